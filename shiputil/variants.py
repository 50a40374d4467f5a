from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

from shiputil.config import Variant

def resolve_variants(requested: Optional[Sequence[str]], configured: Sequence[Variant], defaults: Sequence[str]) -> Tuple[List[Variant], List[str]]:
    """Picks the variants to build.

    Result order follows the order variants are declared in, not the order they
    were asked for. Names that match nothing come back in the second list; the
    caller decides how loudly to complain, an empty selection is legal.
    """
    names = list(requested) if requested is not None else list(defaults)
    wanted = set(names)

    selected = [variant for variant in configured if variant.name in wanted]

    known = set(variant.name for variant in configured)
    unmatched = []
    for name in names:
        if name not in known and name not in unmatched:
            unmatched.append(name)

    return selected, unmatched
