"""
Host application tables read by SqlDataSource.

Only the columns the exporter reads are modelled. IDs are the host's
32-char string keys; timestamps are timezone-aware UTC.
"""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class LoginSession(SQLModel, table=True):
    """One row per user login (host table ad_session)."""

    id: str = Field(primary_key=True)
    username: Optional[str] = None
    login_status: Optional[str] = None  # "S", "F", "L", "OBPOS_POS", ...
    session_active: bool = False
    server_url: Optional[str] = None
    remote_address: Optional[str] = None
    last_ping: Optional[datetime] = None
    created: datetime = Field(index=True)
    created_by: Optional[str] = None
    updated: Optional[datetime] = None
    updated_by: Optional[str] = None


class UsageAudit(SQLModel, table=True):
    """One row per audited window/process action inside a session."""

    id: str = Field(primary_key=True)
    session_id: Optional[str] = Field(default=None, foreign_key="loginsession.id", index=True)
    command: Optional[str] = None  # "DEFAULT" marks a process execution
    process_time: Optional[float] = None  # ms
    object_id: Optional[str] = None  # tab id for windows, process id for processes
    created: datetime = Field(index=True)
    created_by: Optional[str] = None


class Module(SQLModel, table=True):
    id: str = Field(primary_key=True)  # "0" is the core module
    javapackage: str
    name: str
    version: str
    type: str = "M"
    is_commercial: bool = False
    enabled: bool = True
    created: datetime


class Window(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    module_id: Optional[str] = Field(default=None, foreign_key="module.id")


class Tab(SQLModel, table=True):
    id: str = Field(primary_key=True)
    window_id: Optional[str] = Field(default=None, foreign_key="window.id")


class Process(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    module_id: Optional[str] = Field(default=None, foreign_key="module.id")


class SystemInfo(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    system_identifier: Optional[str] = None
