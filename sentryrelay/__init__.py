"""Queueing, rate-limit aware relay that delivers Sentry envelopes over HTTP."""

__version__ = "0.1.0"