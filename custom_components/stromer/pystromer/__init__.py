"""Asynchronous Python client for the Stromer API."""

from .device import StromerBikeController, StromerBikeSnapshot
from .models import ActivityMode, AuthState, Credentials, LightMode, StromerBike
from .polling import PollingEngine
from .stromer import StromerApi

__all__ = [
    "ActivityMode",
    "AuthState",
    "Credentials",
    "LightMode",
    "PollingEngine",
    "StromerApi",
    "StromerBike",
    "StromerBikeController",
    "StromerBikeSnapshot",
]
