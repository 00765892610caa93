import json, logging, os, time

LOG_PATH = 'grailscan_data/logs/events.jsonl'

LOGGER = logging.getLogger(__name__)


def configure(path):
    global LOG_PATH
    LOG_PATH = str(path)


def event(step, item_id=None, status='ok', **kw):
    rec = {'ts': time.time(), 'step': step, 'item_id': item_id, 'status': status}
    rec.update(kw)
    try:
        os.makedirs(os.path.dirname(LOG_PATH) or '.', exist_ok=True)
        with open(LOG_PATH, 'a', encoding='utf-8') as f:
            f.write(json.dumps(rec, default=str) + '\n')
    except OSError:
        LOGGER.warning('Could not write %s event to %s', step, LOG_PATH, exc_info=True)


def count_bucket(count):
    if count == 0:
        return '0'
    if count <= 2:
        return '1-2'
    return '3-5'
