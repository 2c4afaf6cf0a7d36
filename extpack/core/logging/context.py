# extpack/core/logging/context.py
from __future__ import annotations
import contextvars
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

__all__ = ["logContext", "getLogContext"]


_EMPTY: Mapping[str, object] = MappingProxyType({})

# Fields describing the build a log record belongs to (extensionId, version).
# Each asyncio task sees its own copy, so concurrent builds never mix them up.
_buildFields: contextvars.ContextVar[Mapping[str, object]] = contextvars.ContextVar("extpack.buildFields", default=_EMPTY)



@contextmanager
def logContext(**fields: object) -> Iterator[Mapping[str, object]]:
    """
    Layers `fields` over the current context for the duration of the block.
    None values are dropped. The previous context comes back on exit, even
    when the block raises.
    """
    layered = dict(_buildFields.get())
    layered.update((key, value) for key, value in fields.items() if value is not None)
    token = _buildFields.set(MappingProxyType(layered))
    try:
        yield _buildFields.get()
    finally:
        _buildFields.reset(token)



def getLogContext() -> Mapping[str, object]:
    return _buildFields.get()
