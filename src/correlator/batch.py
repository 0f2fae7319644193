# src/correlator/batch.py
"""
Wire models for log batches delivered by the transport layer.

Agents ship batches as JSON. Two entry shapes are accepted and decode to
the same LogEntry:

    {"source": "auth", "message": "<raw line>"}
    {"ts": "...", "host": "web-1", "source": "auth", "msg": "<raw line>", "level": "info"}
"""

from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import BatchDecodeError


class LogEntry(BaseModel):
    """One raw line inside a batch."""
    model_config = ConfigDict(extra="ignore")

    source: str = Field(default="", description="Log source on the shipping host")
    message: str = Field(
        ...,
        validation_alias=AliasChoices("message", "msg"),
        description="Raw log line to normalize",
    )
    host: str = Field(default="", description="Host reported by the legacy agent shape")
    ts: Optional[str] = Field(default=None, description="Agent-side timestamp (informational)")
    level: Optional[str] = Field(default=None, description="Agent-side level (ignored)")
    pid: Optional[int] = Field(default=None, description="Agent-side pid (ignored)")


class LogBatch(BaseModel):
    """A batch of raw lines from one host."""
    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "type": "logs",
                "host": "web-1",
                "batch": [
                    {"source": "auth", "message": "Failed password for root from 10.0.0.5 port 22 ssh2"},
                    {"ts": "2024-01-01T10:00:00Z", "source": "metrics", "msg": "CPU:95.0% MEM:40.0%"},
                ],
            }
        },
    )

    type: str = Field(default="logs", description="Message type tag")
    host: str = Field(default="", description="Host that shipped the batch")
    batch: List[LogEntry] = Field(
        default_factory=list,
        validation_alias=AliasChoices("batch", "entries"),
        description="Entries in the order they were read",
    )


def decode_batch(payload: Union[str, bytes]) -> LogBatch:
    """
    Decode a raw transport payload into a LogBatch.

    Raises:
        BatchDecodeError: the payload is not valid JSON or does not match
            the batch schema
    """
    try:
        return LogBatch.model_validate_json(payload)
    except ValidationError as e:
        raise BatchDecodeError(f"Invalid batch: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e
