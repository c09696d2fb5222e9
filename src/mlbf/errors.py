"""Errors raised by filter records and cascade construction."""
from __future__ import annotations


class BitFilterError(ValueError):
    """Base class for malformed filter records."""


class MissingFilterData(BitFilterError):
    def __init__(self) -> None:
        super().__init__('Data object should include filter data "data"')


class MissingHashFuncCount(BitFilterError):
    def __init__(self) -> None:
        super().__init__('Data object should include number of hash functions "hashFuncCount"')


class HashFuncCountExceedsMax(BitFilterError):
    def __init__(self, count: int, maximum: int) -> None:
        super().__init__(f'"hashFuncCount" {count} exceeded max size "{maximum}"')
        self.count = count
        self.maximum = maximum


class InvalidHashFuncCount(BitFilterError):
    def __init__(self, count: object) -> None:
        super().__init__(f'"hashFuncCount" must be a positive integer, got {count!r}')
        self.count = count


class UnrecognizedArgument(BitFilterError, TypeError):
    def __init__(self, arg: object) -> None:
        super().__init__(f"Unrecognized argument of type {type(arg).__name__}")


class CascadeError(ValueError):
    """Base class for cascade construction and verification failures."""


class CascadeDepthExceeded(CascadeError):
    def __init__(self, max_levels: int, target_left: int, candidate_left: int) -> None:
        super().__init__(
            f"cascade did not converge within {max_levels} levels "
            f"(target survivors={target_left}, candidate survivors={candidate_left})"
        )
        self.max_levels = max_levels
        self.target_left = target_left
        self.candidate_left = candidate_left


class CascadeVerificationError(CascadeError):
    def __init__(self, element: bytes) -> None:
        super().__init__(f"false negative for target element {element!r}")
        self.element = element
