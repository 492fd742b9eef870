"""
Object key resolution for S3 uploads.

Every file gets its key decided before the transfer starts. The naming
strategy is one of:

- ``"uuid"``: the uuid the uploader assigned to the file
- ``"filename"``: the original file name, unchanged
- a function of the file id returning the key, ``None`` (failure), or
  something that answers later (a coroutine, an asyncio or
  concurrent.futures future, or an explicit ``Deferred``)

A key returned by a function is assumed to lack the original extension, so
the extension of the file name is reattached to it.
"""
import asyncio
import concurrent.futures
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Set, Tuple, Union

from s3_uploads.errors import KeyNameError

logger = logging.getLogger(__name__)

UUID = "uuid"
FILENAME = "filename"


@dataclass(frozen=True)
class Immediate:
    """A key name (or ``None``) available right away."""
    value: Any


@dataclass(frozen=True)
class Deferred:
    """A key name that will arrive through a future or awaitable."""
    future: Any


KeyNameResult = Union[Immediate, Deferred]


def as_key_name_result(result: Any) -> KeyNameResult:
    """Tag the return value of a key naming function."""
    if isinstance(result, (Immediate, Deferred)):
        return result
    if isinstance(result, concurrent.futures.Future) or inspect.isawaitable(result):
        return Deferred(result)
    return Immediate(result)


def get_extension(filename: Optional[str]) -> Optional[str]:
    """Return the text after the last dot of ``filename``, or None if there is none."""
    if not filename:
        return None
    idx = filename.rfind(".")
    if idx < 0:
        return None
    return filename[idx + 1:] or None


def _as_asyncio_future(awaitable: Any) -> asyncio.Future:
    if isinstance(awaitable, concurrent.futures.Future):
        return asyncio.wrap_future(awaitable)
    return asyncio.ensure_future(awaitable)


class KeyRegistry:
    """Resolved keys by file id. An entry is written once and never replaced."""

    def __init__(self):
        self._keys: Dict[int, str] = {}
        # Bumped on every clear so resolutions started earlier can tell
        self.generation = 0

    def get(self, file_id: int) -> Optional[str]:
        return self._keys.get(file_id)

    def add(self, file_id: int, key: str) -> str:
        """Record ``key`` for ``file_id`` and return the key now on record."""
        if not key:
            raise ValueError(f"Empty key for file {file_id}")
        if file_id in self._keys:
            logger.debug(f"Key for file {file_id} already recorded, keeping {self._keys[file_id]}")
            return self._keys[file_id]
        self._keys[file_id] = key
        return key

    def clear(self) -> None:
        self._keys = {}
        self.generation += 1

    def items(self) -> Iterator[Tuple[int, str]]:
        for file_id in sorted(self._keys):
            yield file_id, self._keys[file_id]

    def __contains__(self, file_id: int) -> bool:
        return file_id in self._keys

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)


class KeyResolver:
    """
    Decides the object key of a file according to the configured naming strategy.

    :param keyname: ``"uuid"``, ``"filename"`` or a key naming function.
    :param get_uuid: accessor for the uuid the uploader assigned to a file id.
    :param registry: where resolved keys are recorded.
    """

    def __init__(self, keyname: Any, get_uuid: Callable[[int], str], registry: Optional[KeyRegistry] = None):
        self._keyname = keyname
        self._get_uuid = get_uuid
        self.registry = registry if registry is not None else KeyRegistry()
        self._pending: Set[asyncio.Future] = set()

    @property
    def keyname(self) -> Any:
        return self._keyname

    def resolve_key(self, file_id: int, filename: str) -> asyncio.Future:
        """
        Determine the key for a file.

        Must be called from within the running event loop. Never raises for a
        bad strategy or a failing naming function; the returned future fails
        with ``KeyNameError`` instead. When the future succeeds the key is
        already in the registry, unless the registry was cleared meanwhile, in
        which case the future fails.
        """
        future = asyncio.get_running_loop().create_future()
        keyname = self._keyname
        generation = self.registry.generation

        if keyname == UUID:
            self._succeed(future, file_id, self._get_uuid(file_id), generation)
        elif keyname == FILENAME:
            self._succeed(future, file_id, filename, generation)
        elif callable(keyname):
            self._call_keyname_function(keyname, future, file_id, filename, generation)
        else:
            logger.error(f"{keyname!r} is not a valid value for the s3.keyname option!")
            self._fail(future, file_id, f"Invalid s3.keyname option: {keyname!r}")

        return future

    def _call_keyname_function(self, func: Callable, future: asyncio.Future, file_id: int, filename: str,
                               generation: int) -> None:
        try:
            result = as_key_name_result(func(file_id))
        except Exception as e:
            logger.error(f"Failed to retrieve key name for {file_id}: {str(e)}")
            self._fail(future, file_id)
            return

        if isinstance(result, Deferred):
            try:
                pending = _as_asyncio_future(result.future)
            except TypeError as e:
                logger.error(f"Failed to retrieve key name for {file_id}: {str(e)}")
                self._fail(future, file_id)
                return
            self._pending.add(pending)
            pending.add_done_callback(self._pending.discard)
            pending.add_done_callback(
                lambda done: self._on_key_name_done(done, future, file_id, filename, generation)
            )
        elif result.value is None:
            logger.error(f"Failed to retrieve key name for {file_id}")
            self._fail(future, file_id)
        else:
            self._succeed(future, file_id, self._with_extension(result.value, filename), generation)

    def _on_key_name_done(self, done: asyncio.Future, future: asyncio.Future, file_id: int, filename: str,
                          generation: int) -> None:
        if done.cancelled():
            logger.error(f"Failed to retrieve key name for {file_id}: cancelled")
            self._fail(future, file_id)
            return
        error = done.exception()
        if error is not None:
            logger.error(f"Failed to retrieve key name for {file_id}: {str(error)}")
            self._fail(future, file_id)
            return
        self._succeed(future, file_id, self._with_extension(done.result(), filename), generation)

    @staticmethod
    def _with_extension(keyname: Any, filename: str) -> str:
        candidate = keyname or filename
        extension = get_extension(filename)
        if keyname and extension is not None:
            return f"{candidate}.{extension}"
        return candidate

    def _succeed(self, future: asyncio.Future, file_id: int, key: Any, generation: int) -> None:
        if not key:
            logger.error(f"Empty key name for {file_id}")
            self._fail(future, file_id)
            return
        if generation != self.registry.generation:
            logger.warning(f"Key name for {file_id} arrived after a reset, discarding {key}")
            self._fail(future, file_id, f"Uploader was reset before the key for {file_id} was resolved")
            return
        key = self.registry.add(file_id, str(key))
        if not future.done():
            future.set_result(key)

    @staticmethod
    def _fail(future: asyncio.Future, file_id: int, message: str = "") -> None:
        if not future.done():
            future.set_exception(KeyNameError(file_id, message))
