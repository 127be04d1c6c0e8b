"""Template rendering errors.

Two error kinds are raised while rendering:
- UnresolvedReferenceError: a value path has no binding and no default
- MalformedDirectiveError: the template structure is broken (unterminated
  block, stray end, unknown function, invalid range target, ...)

Both are fatal for a render call. No partial output is returned.
"""


class TemplateError(Exception):
    """Base class for template errors.

    Attributes:
        message: Error description without location
        template: Name of the template being rendered (if known)
        line: 1-based line number of the directive (if known)
    """

    def __init__(
        self,
        message: str,
        template: str | None = None,
        line: int | None = None,
    ) -> None:
        self.message = message
        self.template = template
        self.line = line
        super().__init__(self._format())

    def _format(self) -> str:
        if self.template is None:
            return self.message
        if self.line is None:
            return f"{self.template}: {self.message}"
        return f"{self.template}:{self.line}: {self.message}"

    def locate(self, template: str, line: int | None) -> "TemplateError":
        """Attach a location if the error does not carry one yet."""
        if self.template is None:
            self.template = template
            self.line = line
            self.args = (self._format(),)
        return self

    def __str__(self) -> str:
        return self._format()


class UnresolvedReferenceError(TemplateError):
    """Raised when a required value path has no binding and no default."""

    def __init__(
        self,
        path: str,
        template: str | None = None,
        line: int | None = None,
        message: str | None = None,
    ) -> None:
        self.path = path
        super().__init__(message or f"unresolved reference: {path}", template, line)


class MalformedDirectiveError(TemplateError):
    """Raised when a directive is structurally invalid."""
