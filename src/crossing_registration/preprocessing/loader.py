"""
Project store interface.

The on-disk project database and the sonar-format decoders live outside this
package. The registration core only needs a way to borrow the two sections and
swaths of a crossing for the duration of one pipeline run, which is what
`ProjectStore.load_crossing_data` provides. Swath buffers are released when the
context exits, on success and on error alike.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, Iterator, Protocol, Tuple

from .project import Crossing, Project, Section, Swath
from ..utils.logging import setup_logger

logger = setup_logger(__name__)


@dataclass
class CrossingData:
    """Sections and swaths borrowed for one crossing."""

    target_section: Section
    source_section: Section
    target_swath: Swath
    source_swath: Swath

    def release(self) -> None:
        self.target_swath.release()
        self.source_swath.release()


class ProjectStore(Protocol):
    """Anything that can hydrate the swaths of a crossing."""

    def load_crossing_data(self, project: Project, crossing: Crossing) -> ContextManager[CrossingData]:
        ...


SwathReader = Callable[[Section], Swath]


class SwathProjectStore:
    """
    Project store backed by a swath reader callable.

    Each call to `load_crossing_data` hydrates fresh swaths through the reader
    so concurrent workers never share buffers.

    Example:
        store = SwathProjectStore(reader=my_decoder)
        with store.load_crossing_data(project, crossing) as data:
            ...
    """

    def __init__(self, reader: SwathReader):
        self.reader = reader

    @contextmanager
    def load_crossing_data(self, project: Project, crossing: Crossing) -> Iterator[CrossingData]:
        target_section = project.find_section(crossing.file_id_1, crossing.section_1)
        source_section = project.find_section(crossing.file_id_2, crossing.section_2)
        target_swath = self.reader(target_section)
        try:
            source_swath = self.reader(source_section)
        except Exception:
            target_swath.release()
            raise
        data = CrossingData(
            target_section=target_section,
            source_section=source_section,
            target_swath=target_swath,
            source_swath=source_swath,
        )
        logger.debug(
            "Loaded swaths for crossing %s (%d + %d pings).",
            crossing.label,
            data.target_swath.num_pings,
            data.source_swath.num_pings,
        )
        try:
            yield data
        finally:
            data.release()


class InMemoryProjectStore(SwathProjectStore):
    """
    Store holding pre-built swaths keyed by (file_id, section_id).

    Every load hands out copies so releasing them leaves the originals intact.
    """

    def __init__(self, swaths: Dict[Tuple[int, int], Swath]):
        self.swaths = swaths
        super().__init__(reader=self._copy_swath)

    def _copy_swath(self, section: Section) -> Swath:
        try:
            original = self.swaths[(section.file_id, section.section_id)]
        except KeyError:
            raise KeyError(f"No swath stored for section {section.label}") from None
        return Swath(pings=list(original.pings))
