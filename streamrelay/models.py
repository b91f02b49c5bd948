from dataclasses import dataclass
from typing import Iterator, Literal, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field


FileType = Literal["mp4", "mov", "other"]


class RelayRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_url: str
    destination_url: str
    file_type: Optional[FileType] = None


@dataclass
class ResolvedSource:
    """A source body ready to be streamed once."""
    stream: Iterator[bytes]
    content_length: Optional[int] = None
    content_type: Optional[str] = None
    response: Optional[requests.Response] = None

    def close(self):
        if self.response is not None:
            self.response.close()


@dataclass
class TransferResult:
    video_id: Optional[str] = None


class Task(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId")
    status: Literal["processing", "completed", "failed"] = "processing"
    start_time: float = Field(alias="startTime")
    upload_start_time: Optional[float] = Field(default=None, alias="uploadStartTime")
    upload_end_time: Optional[float] = Field(default=None, alias="uploadEndTime")
    finished_time: Optional[float] = Field(default=None, alias="finishedTime")
    video_id: Optional[str] = Field(default=None, alias="videoId")
    error: Optional[str] = None


class UploadAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(alias="taskId")
    message: str = "Upload started"
    status: Literal["processing"] = "processing"


class HealthStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: Literal["alive"] = "alive"
    time: str
    server_start_time: str = Field(alias="serverStartTime")
    uptime_sec: int = Field(alias="uptimeSec")
    status_msg: str = Field(alias="statusMsg")
