"""Aggregate deck holding a copy of every native shape, one slide each."""

import copy
import logging
import tempfile
import zipfile
from io import BytesIO
from pathlib import Path

from lxml import etree
from pptx import Presentation
from pptx.exc import PackageNotFoundError
from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.oxml.ns import qn
from pptx.slide import Slide

from shapeshelf.errors import ShapeshelfError
from shapeshelf.library.paths import LibraryPaths
from shapeshelf.renderer.pptx_writer import BLANK_LAYOUT, SLIDE_HEIGHT, SLIDE_WIDTH

logger = logging.getLogger(__name__)

_TREE_PROPERTIES = {qn("p:nvGrpSpPr"), qn("p:grpSpPr"), qn("p:extLst")}
_REL_ATTRIBUTES = (qn("r:embed"), qn("r:link"), qn("r:id"))

# Raised by python-pptx for missing, non-zip or malformed package files.
_UNREADABLE = (OSError, KeyError, ValueError, zipfile.BadZipFile, PackageNotFoundError, etree.XMLSyntaxError)


def copy_slide_shapes(source: Slide, dest: Slide) -> int:
    """Copy every shape on ``source`` onto ``dest``.

    Picture and media references are re-related to parts in the
    destination package.

    Returns:
        Number of top-level shapes copied.
    """
    dest_tree = dest.shapes._spTree
    copied = 0
    for element in source.shapes._spTree:
        if element.tag in _TREE_PROPERTIES:
            continue
        clone = copy.deepcopy(element)
        _relink(clone, source, dest)
        dest_tree.append(clone)
        copied += 1
    return copied


def _relink(element, source: Slide, dest: Slide) -> None:
    for node in element.iter():
        for attr in _REL_ATTRIBUTES:
            r_id = node.get(attr)
            if not r_id:
                continue
            rel = source.part.rels[r_id]
            if rel.is_external:
                new_id = dest.part.relate_to(rel.target_ref, rel.reltype, is_external=True)
            elif rel.reltype == RT.IMAGE:
                _, new_id = dest.part.get_or_add_image_part(BytesIO(rel.target_part.blob))
            else:
                logger.warning(f"Dropping unsupported {rel.reltype} reference while copying shapes")
                del node.attrib[attr]
                continue
            node.set(attr, new_id)


class LibraryDeck:
    """Single .pptx aggregating copies of native shape files.

    Slide indexes are 1-based and stable as long as slides are only
    appended.
    """

    def __init__(self, paths: LibraryPaths) -> None:
        self.paths = paths

    @property
    def path(self) -> Path:
        return self.paths.deck_path

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_deck(self) -> Path:
        """Create an empty deck if none exists.

        Returns:
            Path of the deck.
        """
        deck_path = self.path
        if deck_path.exists():
            return deck_path

        prs = Presentation()
        prs.slide_width = SLIDE_WIDTH
        prs.slide_height = SLIDE_HEIGHT
        prs.save(str(deck_path))
        logger.info(f"Created library deck at {deck_path}")
        return deck_path

    def slide_count(self) -> int:
        if not self.exists():
            return 0
        return len(Presentation(str(self.path)).slides)

    def add_from_native(self, native_path: Path | str) -> int:
        """Append a slide holding the shapes from a native file's first slide.

        Args:
            native_path: Native single-slide .pptx.

        Returns:
            1-based index of the new deck slide.

        Raises:
            ShapeshelfError: If the native file cannot be read or has no slides,
                or the deck cannot be saved.
        """
        deck_path = self.ensure_deck()
        name = Path(native_path).name
        try:
            source = Presentation(str(native_path))
        except _UNREADABLE as e:
            raise ShapeshelfError(f"Failed to add to deck: cannot open {name}", detail=str(e)) from e
        if len(source.slides) == 0:
            raise ShapeshelfError(f"Failed to add to deck: {name} has no slides")

        deck = Presentation(str(deck_path))
        slide = deck.slides.add_slide(deck.slide_layouts[BLANK_LAYOUT])
        try:
            copied = copy_slide_shapes(source.slides[0], slide)
        except _UNREADABLE as e:
            raise ShapeshelfError(f"Failed to add to deck: cannot copy shapes from {name}", detail=str(e)) from e
        try:
            deck.save(str(deck_path))
        except OSError as e:
            raise ShapeshelfError("Failed to save library deck", detail=str(e)) from e

        index = len(deck.slides)
        logger.info(f"Added {copied} shapes from {name} to deck slide {index}")
        return index

    def extract_slide(self, index: int, directory: Path | str | None = None) -> Path:
        """Write one deck slide as a standalone single-slide presentation.

        Args:
            index: 1-based slide index.
            directory: Where to create the file; the system temp dir by default.

        Returns:
            Path of the new temporary .pptx. The caller owns its cleanup.

        Raises:
            ShapeshelfError: If the deck is missing or the index is out of range.
        """
        if not self.exists():
            raise ShapeshelfError("Library deck does not exist")

        deck = Presentation(str(self.path))
        if not 1 <= index <= len(deck.slides):
            raise ShapeshelfError(f"Deck slide {index} does not exist (deck has {len(deck.slides)} slides)")

        out = Presentation()
        out.slide_width = deck.slide_width
        out.slide_height = deck.slide_height
        slide = out.slides.add_slide(out.slide_layouts[BLANK_LAYOUT])
        copy_slide_shapes(deck.slides[index - 1], slide)

        fd, name = tempfile.mkstemp(prefix=f"deck_slide_{index}_", suffix=".pptx", dir=directory)
        with open(fd, "wb") as f:
            out.save(f)
        return Path(name)
