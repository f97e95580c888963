"""Checked decoding of the opaque state values passed along a resource."""

from typing import Any, Optional, Type, TypeVar

from reconkit.errors import WrongTypeError

T = TypeVar("T")


def to_type(value: Any, expected: Type[T]) -> Optional[T]:
    """
    Downcast a state value produced by an earlier operation.

    Args:
        value: The state value, possibly ``None``.
        expected: The type the caller expects.

    Returns:
        ``None`` if ``value`` is ``None``, otherwise ``value`` itself.

    Raises:
        WrongTypeError: If ``value`` is not an instance of ``expected``.
    """
    if value is None:
        return None
    if not isinstance(value, expected):
        raise WrongTypeError(
            f"expected {expected.__name__}, got {type(value).__name__}"
        )
    return value
