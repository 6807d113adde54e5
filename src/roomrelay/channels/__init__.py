"""Visitor-facing channels."""

from roomrelay.channels.visitor import SendFn, VisitorHub

__all__ = ["SendFn", "VisitorHub"]
