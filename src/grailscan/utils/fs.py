import os, hashlib

def ensure_dir(path:str):
    os.makedirs(path, exist_ok=True)

def atomic_write(dst:str, data:bytes):
    ensure_dir(os.path.dirname(dst) or ".")
    tmp = dst + ".tmp"
    if os.path.exists(tmp):
        os.remove(tmp)
    with open(tmp, 'wb') as f:
        f.write(data)
    os.replace(tmp, dst)

def atomic_write_text(dst:str, text:str):
    atomic_write(dst, text.encode('utf-8'))

def checksum(data:bytes, algo='md5'):
    h = hashlib.new(algo)
    h.update(data)
    return h.hexdigest()
