import inspect
import typing as t


class ImportExtraError(ImportError):
    """A needed package extra has not been installed."""

    def __init__(self, extra_name: str, feature_name: str):
        super().__init__(f"The `{extra_name}` package extra is required to use `{feature_name}`.")


async def maybe_await(value: t.Any) -> t.Any:
    """Awaits ``value`` if it is awaitable, otherwise returns it as is. Lets callbacks be plain or async functions."""
    if inspect.isawaitable(value):
        return await value
    return value
