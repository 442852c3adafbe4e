"""Receptor MQTT de los dispositivos edge."""

from .client import MqttTelemetryClient
from .handler import BrokerMessageHandler

__all__ = ["BrokerMessageHandler", "MqttTelemetryClient"]
