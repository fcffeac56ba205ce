from __future__ import annotations


class CombineError(Exception):
    """Base class for every failure raised while combining packages."""


class MissingPartError(CombineError, KeyError):
    """An expected part is absent from a package."""

    def __init__(self, part_name: str, package_name: str = "") -> None:
        self.part_name = part_name
        self.package_name = package_name
        where = f" in {package_name}" if package_name else ""
        super().__init__(f"Part not found{where}: {part_name}")

    def __str__(self) -> str:
        return str(self.args[0])


class ValidationError(CombineError, ValueError):
    """Options or call arguments are invalid; raised before any package is touched."""


class MalformedXmlError(CombineError):
    """An XML part cannot be parsed."""

    def __init__(self, part_name: str, package_name: str = "", reason: str = "") -> None:
        self.part_name = part_name
        self.package_name = package_name
        where = f" in {package_name}" if package_name else ""
        detail = f": {reason}" if reason else ""
        super().__init__(f"Malformed XML part {part_name}{where}{detail}")


__all__ = ["CombineError", "MalformedXmlError", "MissingPartError", "ValidationError"]
