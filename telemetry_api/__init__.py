"""Servicio de ingesta de telemetría de motores con detección adaptativa de anomalías."""

__version__ = "2.0.0"
