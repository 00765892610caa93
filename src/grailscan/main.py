"""Command-line entrypoint for scanning and confirming comic covers."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .confidence import CHECKPOINT_LABELS, checkpoint_for_score, confidence_label, tier_for_score
from .config import ScannerConfig
from .errors import BatchSizeError, PersistenceError
from .feedback import FeedbackRecorder
from .history import ScanHistory
from .models import ScanItem
from .selection import ReviewView, describe_candidate
from .session import ScanSession

logging.basicConfig(level=logging.INFO)

app = typer.Typer(help="Identify comic covers from photographs and confirm them into the catalog.")

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".heic", ".tif", ".tiff")


def _read_config(
    data_dir: Path,
    model: str,
    dry_run: bool,
    include_reprints: bool,
    price_guide: Optional[Path],
) -> ScannerConfig:
    kwargs = {
        "data_dir": data_dir,
        "api_model": model,
        "dry_run": dry_run,
        "exclude_reprints": not include_reprints,
        "price_guide_path": price_guide,
    }
    return ScannerConfig(**kwargs)


def _collect_images(paths: List[Path]) -> List[Path]:
    files: List[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(
                sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() in ALLOWED_EXTENSIONS)
            )
        elif path.is_file():
            files.append(path)
        else:
            raise typer.BadParameter(f"{path} does not exist")
    return files


def _print_review(view: ReviewView, item: ScanItem, index: int, total: int) -> List[str]:
    typer.echo("")
    typer.echo(f"[{index}/{total}] {item.id}  {view.image_url or ''}".rstrip())
    typer.echo(view.message)
    if item.error:
        typer.echo(f"  ({item.error})")
    numbered: List[str] = []
    for tier, section in view.sections.non_empty():
        typer.echo(f"  {tier.value.upper()} confidence")
        for candidate in section:
            numbered.append(candidate.id)
            marker = "*" if candidate.id == view.preselected_id else " "
            typer.echo(f"   {marker}{len(numbered)}. {describe_candidate(candidate)}")
    if total == 1 and item.top_candidate is not None:
        typer.echo(f"  {view.checkpoint_label}")
    return numbered


async def _review_loop(session: ScanSession) -> None:
    reviewed = 0
    while True:
        item = await session.next_for_review()
        if item is None:
            break
        reviewed += 1
        view = session.review(item.id)
        numbered = _print_review(view, item, reviewed, len(session.items))
        options = ["number to confirm"] if numbered else []
        if view.fast_confirm_available:
            options.append("f = fast confirm top match")
        if view.offer_disable_filter:
            options.append("r = rescan including reprints")
        options.append("s = skip")
        default = "f" if view.fast_confirm_available else "s"
        choice = await asyncio.to_thread(typer.prompt, f"Choose ({', '.join(options)})", default=default)
        choice = str(choice).strip().lower()
        try:
            if choice == "f" and view.fast_confirm_available:
                record_id = await session.fast_confirm(item.id)
                chosen = item.top_candidate
            elif choice.isdigit() and 1 <= int(choice) <= len(numbered):
                chosen = item.find_candidate(numbered[int(choice) - 1])
                record_id = await session.confirm_by_id(item.id, numbered[int(choice) - 1])
            elif choice == "r" and view.offer_disable_filter:
                replacement = await session.rescan(item.id, exclude_reprints=False)
                typer.echo(f"Queued {replacement.id} without the reprint filter.")
                continue
            else:
                await session.skip(item.id)
                typer.echo("Skipped.")
                continue
        except PersistenceError as exc:
            typer.echo(f"Failed to save comic: {exc}. Please try again.", err=True)
            continue

        typer.echo(f"Saved as {record_id}.")
        if chosen is not None:
            quote = await session.lookup_price(chosen)
            if quote is not None and quote.mid is not None:
                typer.echo(f"Price guide: {quote.mid:.2f} {quote.currency}")
        verdict = await asyncio.to_thread(
            typer.prompt, "Was the top match correct? (y/n, blank to skip)", default="", show_default=False
        )
        if str(verdict).strip().lower() in {"y", "n"}:
            corrected = None
            if chosen is not None and chosen is not item.top_candidate:
                corrected = {
                    "title": chosen.series_name or chosen.title,
                    "issue": chosen.issue_label,
                    "publisher": chosen.publisher,
                    "year": str(chosen.year) if chosen.year else None,
                    "candidate_id": chosen.id,
                }
            await session.record_feedback(item.id, str(verdict).strip().lower() == "y", corrected)


async def _run_scan(session: ScanSession, images: List[bytes]) -> None:
    await session.submit(images)
    await _review_loop(session)
    await session.wait_idle()


@app.command("scan")
def scan(
    paths: List[Path] = typer.Argument(..., help="Photographs or directories of photographs."),
    data_dir: Path = typer.Option(Path("grailscan_data"), help="Where images, records and logs are kept."),
    model: str = typer.Option("gpt-4o", help="Vision model used to rank candidates."),
    dry_run: bool = typer.Option(False, help="Run without contacting the API and emit synthetic candidates."),
    include_reprints: bool = typer.Option(False, help="Keep reprints and facsimiles among the candidates."),
    price_guide: Optional[Path] = typer.Option(None, help="Optional JSON/YAML price guide."),
) -> None:
    """Identify a batch of photographs and review each match."""

    config = _read_config(data_dir, model, dry_run, include_reprints, price_guide)
    files = _collect_images(paths)
    session = ScanSession(config)
    images = [path.read_bytes() for path in files]
    try:
        asyncio.run(_run_scan(session, images))
    except BatchSizeError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(json.dumps([item.summary() for item in session.items], indent=2, default=str))


@app.command("feedback-stats")
def feedback_stats(
    data_dir: Path = typer.Option(Path("grailscan_data"), help="Where images, records and logs are kept."),
) -> None:
    """Show how often the delivered top match was right."""

    config = ScannerConfig(data_dir=data_dir, dry_run=True)
    recorder = FeedbackRecorder(config.feedback_path, config.max_feedback_entries)
    typer.echo(recorder.accuracy_stats().model_dump_json(indent=2))


@app.command("recent")
def recent(
    data_dir: Path = typer.Option(Path("grailscan_data"), help="Where images, records and logs are kept."),
    limit: int = typer.Option(10, min=1, help="Number of scans to show."),
) -> None:
    """List the most recently confirmed scans."""

    config = ScannerConfig(data_dir=data_dir, dry_run=True)
    history = ScanHistory(config.history_path, config.max_history_entries)
    typer.echo(json.dumps([entry.model_dump(mode="json") for entry in history.load(limit)], indent=2))


@app.command("tier")
def tier(
    score: float = typer.Argument(..., min=0.0, max=1.0, help="Classifier score between 0 and 1."),
    threshold: float = typer.Option(0.70, min=0.0, max=1.0, help="'Pretty confident' checkpoint."),
) -> None:
    """Explain how a score is presented."""

    checkpoint = checkpoint_for_score(score, threshold)
    payload = {
        "score": score,
        "tier": tier_for_score(score).value,
        "label": confidence_label(score),
        "checkpoint": checkpoint.value,
        "checkpoint_label": CHECKPOINT_LABELS[checkpoint],
    }
    typer.echo(json.dumps(payload, indent=2))


if __name__ == "__main__":
    app()
