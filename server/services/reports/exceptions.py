"""Report engine exception hierarchy."""


class ReportError(Exception):
    """Base exception for all report errors."""


class InvalidComponentError(ReportError, TypeError):
    """Object is not one of the registered report component classes."""

    def __init__(self, component: object):
        self.component = component
        super().__init__(f"{type(component).__name__} is not a valid report component!")


class TableIndexError(ReportError, IndexError):
    """Requested table index is beyond the tables of the report."""

    def __init__(self, table_index: int, table_count: int):
        self.table_index = table_index
        self.table_count = table_count
        super().__init__(f"Only {table_count} tables! (index {table_index} tried)")


class UnmatchedFieldError(ReportError, KeyError):
    """Submitted value has no editable text component with the same key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No text component with key '{key}'!")

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class ReportNotLoadedError(ReportError):
    """Report data accessed before the report was queried."""


class UnknownReportError(ReportError, LookupError):
    """No report class registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown report '{name}'")
