#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# The check, list and rm commands.  Each one gets a ready made
# Registry object and talks to nothing else.
#

import sys
import requests
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from Spinner import Spinner
from Registry import RegistryError

SIZE_UNITS = ["B", "kB", "MB", "GB", "TB", "PB", "EB"]


class ImagesNotRemovedError(Exception):
    """Some of the images given to rm could not be removed.  The
    details have already been printed on stderr."""

    def __init__(self, count):
        self.count = count
        super().__init__("%d image(s) not removed" % count)


@dataclass
class RemoveResult:
    attempted: int = 0
    succeeded: int = 0
    # (image, error) in the order the images were given
    failed: List[Tuple[str, Exception]] = field(default_factory=list)

    @property
    def not_removed(self):
        return self.attempted - self.succeeded

    @property
    def ok(self):
        return self.succeeded == self.attempted

    def raise_for_failures(self):
        if not self.ok:
            raise ImagesNotRemovedError(self.not_removed)


def human_bytes(size):
    """Format a byte count with SI units, 35 -> "35 B", 1500 -> "1.5 kB",
    82_000_000 -> "82 MB"."""

    if size < 10:
        return "%d B" % size

    e = 0
    while e < len(SIZE_UNITS) - 1 and size >= 1000 ** (e + 1):
        e += 1

    val = int(size / 1000 ** e * 10 + 0.5) / 10
    if val < 10:
        return "%.1f %s" % (val, SIZE_UNITS[e])

    return "%.0f %s" % (val, SIZE_UNITS[e])


def align_columns(rows, padding=2):
    """Line up rows of cells in columns, each column as wide as its
    widest cell plus padding.  The last cell of a row is not padded.
    Returns the lines."""

    widths = []
    for row in rows:
        for i, cell in enumerate(row[:-1]):
            if i == len(widths):
                widths.append(0)
            widths[i] = max(widths[i], len(cell))

    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i] + padding) for i, cell in enumerate(row[:-1])]
        cells.extend(row[-1:])
        lines.append("".join(cells))

    return lines


def split_image(image) -> Tuple[str, str]:
    """Split repository[:reference] on the first colon, the reference
    defaults to latest."""

    if ":" not in image:
        return image, "latest"

    repository, reference = image.split(":", 1)
    return repository, reference


def image_size(manifest):
    """Total compressed size of the layers in a manifest"""

    return sum(layer.size for layer in manifest.layers)


def check(reg, out=None):
    """Check that the registry supports the V2 API"""

    reg.check_api()
    print("OK", file=out or sys.stdout)


def list_images(reg, repositories: Sequence[str] = (), sizes=False,
                spinner: Optional[Spinner] = None) -> Iterator[tuple]:
    """Yield (repository, tag) for each tag in the registry, or
    (repository, tag, size) if sizes is set.

    Without repositories all of them are listed in sorted order, given
    repositories are listed in the order given.  Tags are always
    sorted.  The first failing registry call stops the listing.
    """

    if not repositories:
        repositories = sorted(reg.get_repositories())

    for repo_name in repositories:
        _, tags = reg.get_tags(repo_name)

        for tag in sorted(tags):
            if not sizes:
                yield repo_name, tag
                continue

            if spinner is not None:
                spinner.next()

            manifest = reg.get_manifest(repo_name, tag)
            yield repo_name, tag, human_bytes(image_size(manifest)) + " (compressed)"


def print_images(reg, repositories: Sequence[str] = (), sizes=False, table=False, out=None):
    """Print the images in the registry, one per line as
    repository:tag, or as a table.  Whatever was listed before an
    error is still printed."""

    out = out or sys.stdout
    spinner = Spinner() if sizes else None

    records = list_images(reg, repositories, sizes, spinner)

    try:
        if not table:
            for record in records:
                line = "%s:%s" % record[:2]
                if sizes:
                    line += "\t" + record[2]
                print(line, file=out)
            return

        rows = [("REPOSITORY", "TAG", "SIZE") if sizes else ("REPOSITORY", "TAG")]
        try:
            for record in records:
                rows.append(record)
        finally:
            for line in align_columns(rows):
                print(line, file=out)

    finally:
        if spinner is not None:
            spinner.clear()


def remove_images(reg, images: Sequence[str], verbose=False, out=None, err=None) -> RemoveResult:
    """Remove each of the repository[:reference] images from the
    registry.  A failure is reported on stderr and the next image is
    tried, nothing stops the batch.  The registry API can only delete
    by digest so every image is resolved to its digest first.
    """

    out = out or sys.stdout
    err = err or sys.stderr

    result = RemoveResult(attempted=len(images))

    for image in images:
        repository, reference = split_image(image)
        image = "%s:%s" % (repository, reference)

        try:
            digest = reg.get_digest(repository, reference)
        except (RegistryError, requests.exceptions.RequestException) as e:
            print("Couldn't find %s: %s" % (image, e), file=err)
            result.failed.append((image, e))
            continue

        try:
            reg.delete_image(repository, digest)
        except (RegistryError, requests.exceptions.RequestException) as e:
            print("Couldn't remove %s: %s" % (image, e), file=err)
            result.failed.append((image, e))
            continue

        if verbose:
            print("%s removed" % image, file=out)

        result.succeeded += 1

    return result
