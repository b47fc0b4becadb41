from pathlib import Path
from typing import List, Optional

import typer

from .analysis import analyze_batch, compare_images, describe_similarity
from .config import Settings
from .logging import get_logger
from .output.report import build_report, write_report_json
from .quality.scoring import PhotoScorer
from .similarity.cluster import BatchAbortError
from .similarity.distance import Comparator, LengthMismatchError
from .similarity.hash import FingerprintError, HashAlgorithm, ImageDescriptor, fingerprint, fingerprint_to_hex

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"}

app = typer.Typer(help="MemFlow – group similar photos by perceptual fingerprint", no_args_is_help=True)


def _read_image(path: Path) -> bytes:
    logger = get_logger(__name__)
    try:
        return path.read_bytes()
    except OSError as exc:
        logger.error(f"Cannot read {path}: {exc}")
        raise typer.Exit(code=1) from exc


def _discover_images(directory: Path) -> List[Path]:
    return sorted(
        path for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS
    )


@app.command("fingerprint")
def fingerprint_command(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Image file to fingerprint"),
    algorithm: HashAlgorithm = typer.Option(HashAlgorithm.AVERAGE, help="Fingerprint algorithm"),
) -> None:
    """Print the perceptual fingerprint of an image."""
    logger = get_logger(__name__)
    try:
        bits = fingerprint(_read_image(image), algorithm)
    except FingerprintError as exc:
        logger.error(f"Failed to fingerprint {image}: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(bits)
    typer.echo(fingerprint_to_hex(bits))


@app.command()
def compare(
    image1: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="First image"),
    image2: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Second image"),
    algorithm: HashAlgorithm = typer.Option(HashAlgorithm.AVERAGE, help="Fingerprint algorithm"),
    sharpen: bool = typer.Option(False, "--sharpen/--no-sharpen", help="Apply logistic score sharpening"),
) -> None:
    """Compare two images and print their similarity score."""
    logger = get_logger(__name__)
    try:
        score = compare_images(
            _read_image(image1), _read_image(image2), algorithm, Comparator(sharpen=sharpen)
        )
    except (FingerprintError, LengthMismatchError) as exc:
        logger.error(f"Failed to compare images: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(f"Similarity: {score * 100:.1f}% ({describe_similarity(score)})")


@app.command()
def group(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, help="Directory of photos to group"),
    threshold: float = typer.Option(0.85, help="Minimum similarity for linking two photos, in [0, 1]"),
    algorithm: HashAlgorithm = typer.Option(HashAlgorithm.AVERAGE, help="Fingerprint algorithm"),
    sharpen: bool = typer.Option(False, "--sharpen/--no-sharpen", help="Apply logistic score sharpening"),
    sharpness: bool = typer.Option(True, "--sharpness/--no-sharpness", help="Pick the sharpest photo per group"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write a JSON report to this path"),
) -> None:
    """
    Group similar photos in a directory.

    Every photo is fingerprinted, compared with every other photo, and linked
    to any photo scoring at or above the threshold. Linked photos are grouped
    transitively; photos with no match are reported as unique.
    """
    logger = get_logger(__name__)

    try:
        settings = Settings(similarity_threshold=threshold, algorithm=algorithm, sharpen=sharpen)
    except ValueError as exc:
        logger.error(f"Invalid settings: {exc}")
        raise typer.Exit(code=1) from exc

    paths = _discover_images(directory)
    if not paths:
        logger.warning(f"No images found in {directory}")
        return

    logger.info(f"Fingerprinting {len(paths)} images from {directory}")
    descriptors = [
        ImageDescriptor(name=path.name, data=_read_image(path), original_name=str(path))
        for path in paths
    ]

    try:
        analysis = analyze_batch(descriptors, settings, scorer=PhotoScorer() if sharpness else None)
    except BatchAbortError as exc:
        logger.error(f"Grouping aborted: {exc}")
        raise typer.Exit(code=1) from exc

    for group_entry in analysis.grouping.groups:
        best = analysis.representatives.get(group_entry.group_id)
        line = (
            f"{group_entry.group_id}: {group_entry.count} photos, "
            f"average similarity {group_entry.average_score * 100:.1f}%"
        )
        if best:
            line += f", best: {best}"
        typer.echo(line)
        for member in group_entry.member_ids:
            typer.echo(f"  {member}")

    unique = analysis.grouping.ungrouped()
    typer.echo(f"Groups: {len(analysis.grouping.groups)}")
    typer.echo(f"Unique photos: {len(unique)}")
    if analysis.failures:
        typer.echo(f"Skipped (unreadable): {len(analysis.failures)}")

    if out is not None:
        report_path = write_report_json(build_report(analysis, settings), out)
        typer.echo(f"Report: {report_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
