"""Error hierarchy for fixture loading.

- FixtureError: base class, carries the fixture and record index once known
- ConfigurationError: bad descriptor, unknown entity type, unwritable field
- ReferenceResolutionError: lookup of a reference that was never registered
- DeferredReferenceError: a deferred evaluator raised
- StoreError: for store implementations that wrap their own failures
- LoaderStateError: a load was started while another is in progress

Driver errors raised by the store (constraint violations, connectivity)
are not wrapped; they reach the caller unchanged.
"""


class FixtureError(Exception):
    """Base class for all fixture loading errors."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.fixture: str | None = None
        self.record_index: int | None = None
        super().__init__(message)

    def with_context(self, fixture: str, record_index: int | None) -> "FixtureError":
        """Attach load position unless an inner frame already did."""
        if self.fixture is None:
            self.fixture = fixture
            self.record_index = record_index
        return self

    def __str__(self) -> str:
        if self.fixture is None:
            return self.message
        if self.record_index is None:
            return f"[{self.fixture}] {self.message}"
        return f"[{self.fixture} #{self.record_index}] {self.message}"


class ConfigurationError(FixtureError):
    """Descriptor or entity type cannot be loaded as declared."""


class DuplicateReferenceError(ConfigurationError):
    """A reference key was registered twice with different handles."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Reference '{key}' is already registered")
        self.key = key


class ReferenceResolutionError(FixtureError):
    """A reference key was looked up before anything registered it."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Reference '{key}' is not registered")
        self.key = key


class DeferredReferenceError(FixtureError):
    """A deferred field evaluator raised while building a record."""

    def __init__(self, field: str, cause: BaseException) -> None:
        super().__init__(
            f"Deferred value for field '{field}' failed: {cause!r}",
        )
        self.field = field


class StoreError(FixtureError):
    """Failure reported by a store collaborator."""


class LoaderStateError(FixtureError):
    """Operation not allowed in the loader's current state."""
