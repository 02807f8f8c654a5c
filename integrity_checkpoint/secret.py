"""Opaque handle for credentials."""

from __future__ import annotations

import base64
import binascii
import hmac


class Secret:
    """Holds a credential without exposing it through repr, str or logs.

    Plaintext is only available through reveal(), which callers should use
    at the point the credential is handed to the server.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str = "") -> None:
        self._value = value or ""

    @classmethod
    def from_encoded(cls, encoded: str) -> "Secret":
        """Build a secret from its base64 persisted form.

        Raises:
            ValueError: If the text is not valid base64
        """
        if not encoded:
            return cls("")
        try:
            return cls(base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeError) as exc:
            raise ValueError("Encoded secret is not valid base64") from exc

    def reveal(self) -> str:
        return self._value

    def encoded(self) -> str:
        """Return the base64 persisted form."""
        return base64.b64encode(self._value.encode("utf-8")).decode("ascii")

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return hmac.compare_digest(self._value.encode("utf-8"), other._value.encode("utf-8"))

    def __hash__(self) -> int:
        return hash((Secret, self._value))

    def __repr__(self) -> str:
        return "Secret('********')" if self._value else "Secret('')"

    __str__ = __repr__
