import fnmatch
import os

from typing import Iterable
from typing import List

MAP_PATTERN = "*.umap"

class FileSelection:
    names = None
    paths = None

    def __init__(self):
        self.names = []
        self.paths = []

    def add(self, name: str, path: str) -> None:
        if name not in self.names:
            self.names.append(name)
        self.paths.append(path)

    def __len__(self):
        return len(self.names)

    def __contains__(self, name):
        return name in self.names

def is_selected(name: str, include_all: bool, included: Iterable[str], excluded: Iterable[str]) -> bool:
    # an explicit include beats an explicit exclude for the same name
    if name in included:
        return True
    return include_all and name not in excluded

def select_files(root: str, pattern: str = MAP_PATTERN, include_all: bool = True, included: Iterable[str] = (), excluded: Iterable[str] = ()) -> FileSelection:
    """Walks `root` for files matching `pattern` and keeps the ones whose
    extensionless name passes the include/exclude lists.

    Walk order is sorted so the same tree always gives the same selection.
    """
    included = set(included)
    excluded = set(excluded)

    selection = FileSelection()
    if not os.path.isdir(root):
        return selection

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if not fnmatch.fnmatch(filename, pattern):
                continue

            name = os.path.splitext(filename)[0]
            if is_selected(name, include_all, included, excluded):
                selection.add(name, os.path.join(dirpath, filename))

    return selection

def select_maps(project_dir: str, config) -> List[str]:
    selection = select_files(
        os.path.join(project_dir, "Content"),
        pattern = MAP_PATTERN,
        include_all = config.cook_all_maps,
        included = config.maps_included,
        excluded = config.maps_excluded)

    # explicit includes that aren't anywhere on disk are probably typos
    for name in config.maps_included:
        if name not in selection:
            print(f"MAPS: warning, included map {name} not found under Content")

    return list(selection.names)
