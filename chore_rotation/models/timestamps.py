from datetime import datetime, timezone
from typing import Annotated

from pydantic import AfterValidator


def to_utc_naive(value: datetime) -> datetime:
    """
    All engine arithmetic runs on naive UTC datetimes. Aware values (an ISO
    string ending in 'Z' or carrying an offset) are converted to UTC and
    stripped; naive values are taken to be UTC already.
    """
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


UtcDateTime = Annotated[datetime, AfterValidator(to_utc_naive)]
