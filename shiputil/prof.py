import atexit
import functools
import time

# Nested stage timing for a packaging run.
# Every orchestrator state runs inside a Context; the tree gets dumped at exit if enable_dump() was called.

class StageBlock:
    children = None
    start = None
    end = None
    label = None
    failed = False

    def __init__(self, label: str = None):
        self.children = []
        self.label = label

    def elapsed(self) -> float:
        if self.end is None:
            return time.perf_counter() - self.start
        return self.end - self.start

    def print(self, indent: int = 0, suppress: bool = False) -> None:
        if not suppress:
            status = " (FAILED)" if self.failed else ""
            print(" " * indent + f"{self.label}: {self.elapsed():0.2f}{status}")

        for child in self.children:
            child.print(indent + 2)

root = StageBlock("root")
root.start = time.perf_counter()
current_context = root

def prof(func):
    @functools.wraps(func)
    def wrapper_timer(*args, **kwargs):
        with Context(func.__name__):
            return func(*args, **kwargs)

    return wrapper_timer

class Context:
    def __init__(self, label: str):
        self.block = StageBlock(label)
        self.parent = None

    def __enter__(self):
        global current_context

        current_context.children += [self.block]
        self.parent = current_context
        current_context = self.block

        self.block.start = time.perf_counter()
        return self.block

    def __exit__(self, exception_type, exception_value, exception_traceback):
        global current_context

        self.block.end = time.perf_counter()
        current_context = self.parent

        if exception_type is not None:
            self.block.failed = True
            print(f"Failed {self.block.label} after {self.block.elapsed():0.2f} seconds")
        else:
            print(f"Finished {self.block.label}, {self.block.elapsed():0.2f} seconds")

        # never swallow
        return False

def stages(block: StageBlock = None) -> list:
    """Labels of the finished child stages of `block` (the root if omitted), in order."""
    if block is None:
        block = root
    return [child.label for child in block.children]

def printall() -> None:
    print()
    print("========= Stage timings")
    root.print(suppress = True)

_dump_registered = False

def enable_dump() -> None:
    global _dump_registered
    if not _dump_registered:
        atexit.register(printall)
        _dump_registered = True
