import logging
import os
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional

from ..core.interchange import load_json
from ..core.process_graph import ProcessGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplacementFragment:
    """
    替换片段 | Replacement fragment

    detector 为只含一个节点的检测图，replacement 为用于替换的流程片段。
    一次转换过程中视为只读。
    """
    name: str
    detector: ProcessGraph
    replacement: ProcessGraph


class FragmentLibrary:
    """
    有序片段库。resolve 时按顺序匹配，先匹配者优先。
    """

    DETECTOR_FILE = "detector.json"
    REPLACEMENT_FILE = "replacement.json"

    def __init__(self, fragments: Optional[Iterable[ReplacementFragment]] = None):
        self._fragments: List[ReplacementFragment] = list(fragments or [])

    def __iter__(self) -> Iterator[ReplacementFragment]:
        return iter(self._fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def __getitem__(self, index: int) -> ReplacementFragment:
        return self._fragments[index]

    def add(self, fragment: ReplacementFragment) -> None:
        self._fragments.append(fragment)

    @property
    def names(self) -> List[str]:
        return [fragment.name for fragment in self._fragments]

    @classmethod
    def from_directory(cls, path: str) -> "FragmentLibrary":
        """
        从本地目录加载片段库。

        每个子目录是一个片段，必须包含 detector.json 与 replacement.json
        （交换格式见 PGT.core.interchange）。片段按子目录名排序。

        :param path: 片段库根目录
        :return: FragmentLibrary
        :raises FileNotFoundError: 根目录不存在
        """
        if not os.path.isdir(path):
            raise FileNotFoundError(f"Fragment library directory not found: {path}")

        library = cls()
        for entry in sorted(os.listdir(path)):
            folder = os.path.join(path, entry)
            if not os.path.isdir(folder):
                continue
            detector_path = os.path.join(folder, cls.DETECTOR_FILE)
            replacement_path = os.path.join(folder, cls.REPLACEMENT_FILE)
            if not (os.path.exists(detector_path) and os.path.exists(replacement_path)):
                logger.warning("Skipping fragment folder '%s': detector or replacement file missing", folder)
                continue
            library.add(ReplacementFragment(
                name=entry,
                detector=load_json(detector_path),
                replacement=load_json(replacement_path),
            ))

        logger.info("Loaded %d replacement fragments from '%s'", len(library), path)
        return library
