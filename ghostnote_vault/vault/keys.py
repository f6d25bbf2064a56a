"""
Vault Keys — Zeroizing containers for master and document keys.

A key owns a private ``bytearray``. Cryptographic calls borrow it through
``view()``, a ``memoryview`` over the same buffer, so no second copy of the
key bytes is made. ``zeroize()`` overwrites the buffer in place; it runs on
lock, on explicit release and when the object is collected.

Security Note:
    Python may still leave copies of key bytes in memory it does not
    expose (e.g. inside the crypto backend). Zeroization narrows the
    window, it does not close it.
"""
import hmac
import secrets

from ..exceptions import FormatError
from .config import KEY_LENGTH


class SecretKey:
    """32-byte secret with sole ownership of its buffer."""

    __slots__ = ("_buf", "__weakref__")

    def __init__(self, material) -> None:
        if len(material) != KEY_LENGTH:
            raise FormatError(
                f"{type(self).__name__} must be exactly {KEY_LENGTH} bytes, "
                f"got {len(material)}"
            )
        self._buf = bytearray(material)
        # callers handing over a mutable buffer give up their copy
        if isinstance(material, bytearray):
            _wipe(material)

    @classmethod
    def generate(cls):
        """Fresh key from the OS CSPRNG."""
        buf = bytearray(secrets.token_bytes(KEY_LENGTH))
        return cls(buf)

    @property
    def zeroized(self) -> bool:
        return getattr(self, "_buf", None) is None

    def view(self) -> memoryview:
        """Non-owning borrow of the key bytes."""
        if self._buf is None:
            raise ValueError(f"{type(self).__name__} has been zeroized")
        return memoryview(self._buf)

    def zeroize(self) -> None:
        """Overwrite the key bytes and drop the buffer."""
        buf = getattr(self, "_buf", None)
        if buf is not None:
            _wipe(buf)
            self._buf = None

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.zeroize()

    def __del__(self) -> None:
        self.zeroize()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretKey):
            return NotImplemented
        if self._buf is None or other._buf is None:
            return False
        return hmac.compare_digest(self._buf, other._buf)

    __hash__ = None

    def __copy__(self):
        raise TypeError(f"{type(self).__name__} cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError(f"{type(self).__name__} cannot be copied")

    def __reduce__(self):
        raise TypeError(f"{type(self).__name__} cannot be pickled")

    def __repr__(self) -> str:
        state = "zeroized" if self._buf is None else "set"
        return f"<{type(self).__name__} [{state}]>"


class MasterKey(SecretKey):
    """Key encryption key derived from the password; wraps document keys."""

    __slots__ = ()


class DocumentKey(SecretKey):
    """Data encryption key, one per document."""

    __slots__ = ()


def _wipe(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0
