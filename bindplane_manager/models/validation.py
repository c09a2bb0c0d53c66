"""
Validation error accumulator.

Validators receive an ``Errors`` instance and keep going after the first
problem so that a caller sees every issue with a resource in one pass.
"""

from typing import Iterable, List, Optional, Union


class ValidationError(ValueError):
    """A single validation failure."""

    pass


class MultiError(ValueError):
    """
    Several errors reported together.

    Nested MultiErrors are flattened so ``errors`` is always a flat list.
    """

    def __init__(self, errors: Iterable[Union[BaseException, str]]):
        flat: List[BaseException] = []
        for err in errors:
            if isinstance(err, MultiError):
                flat.extend(err.errors)
            elif isinstance(err, BaseException):
                flat.append(err)
            else:
                flat.append(ValidationError(str(err)))
        self.errors = flat
        super().__init__(str(self))

    @property
    def messages(self) -> List[str]:
        """Return the message of every contained error."""
        return [str(e) for e in self.errors]

    def __str__(self) -> str:
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        points = "\n\t".join(f"* {message}" for message in self.messages)
        return f"{count} {noun} occurred:\n\t{points}\n\n"


class Errors:
    """Accumulates errors and produces a single MultiError (or None)."""

    def __init__(self) -> None:
        self._errors: List[BaseException] = []

    def add(self, err: Optional[Union[BaseException, str]]) -> None:
        """Add an error. None is ignored."""
        if err is None:
            return
        if isinstance(err, str):
            err = ValidationError(err)
        if isinstance(err, MultiError):
            self._errors.extend(err.errors)
        else:
            self._errors.append(err)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def result(self) -> Optional[MultiError]:
        """Return a MultiError with every accumulated error, or None."""
        if not self._errors:
            return None
        return MultiError(self._errors)
