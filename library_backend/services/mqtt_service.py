import json
import logging
import threading
import ssl
from pathlib import Path
from typing import Optional
import paho.mqtt.client as mqtt
from library_backend.config import settings

logger = logging.getLogger(__name__)


class MQTTService:
    """Publishes user notifications to the MQTT broker for live delivery."""

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self._lock = threading.Lock()

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
        else:
            logger.error(f"MQTT connection failed: {reason_code}")
            self.is_connected = False

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly ({reason_code})")
        else:
            logger.info("MQTT client disconnected")

    def publish_notification(self, user_id: str, payload: dict) -> bool:
        """Publish a notification for one user. Returns True when handed to the broker.

        Raises when the client rejects the publish; callers treat delivery as
        best-effort.
        """
        if not settings.mqtt_enabled:
            return False

        topic = settings.mqtt_notification_topic_format.format(user_id=user_id)
        if not (self.client and self.is_connected):
            logger.warning(f"MQTT client not connected, notification for {topic} not published")
            return False

        result = self.client.publish(topic, json.dumps(payload), qos=1)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise RuntimeError(f"Failed to publish to {topic}: rc={result.rc}")
        logger.debug(f"Notification published to {topic}")
        return True

    def _setup_tls(self):
        """Configure TLS/SSL for MQTT client."""
        if not settings.mqtt_use_tls:
            return

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        if settings.mqtt_ca_cert:
            ca_cert_path = Path(settings.mqtt_ca_cert)
            if not ca_cert_path.exists():
                logger.error(f"CA certificate file not found: {ca_cert_path}")
                raise FileNotFoundError(f"CA certificate file not found: {ca_cert_path}")
            context.load_verify_locations(cafile=str(ca_cert_path))
            logger.info(f"Loaded CA certificate from {ca_cert_path}")
        else:
            context.load_default_certs()
            logger.info("Using system default CA certificates")

        # Mutual TLS
        if settings.mqtt_client_cert and settings.mqtt_client_key:
            client_cert_path = Path(settings.mqtt_client_cert)
            client_key_path = Path(settings.mqtt_client_key)

            for path in (client_cert_path, client_key_path):
                if not path.exists():
                    logger.error(f"Client TLS file not found: {path}")
                    raise FileNotFoundError(f"Client TLS file not found: {path}")

            context.load_cert_chain(certfile=str(client_cert_path), keyfile=str(client_key_path))
            logger.info(f"Loaded client certificate from {client_cert_path}")

        if settings.mqtt_tls_insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            logger.warning("TLS insecure mode enabled - certificate verification disabled")
        else:
            context.check_hostname = True
            context.verify_mode = ssl.CERT_REQUIRED

        self.client.tls_set_context(context)
        logger.info("TLS/SSL configured for MQTT connection")

    def connect(self):
        """Connect to MQTT broker with optional TLS/SSL support."""
        if not settings.mqtt_enabled:
            logger.info("MQTT notifications disabled")
            return

        with self._lock:
            if self.client and self.is_connected:
                logger.info("MQTT client already connected")
                return

            client_id = f"library-backend-{threading.current_thread().ident}"
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
            self.client.on_connect = self.on_connect
            self.client.on_disconnect = self.on_disconnect

            try:
                self._setup_tls()
            except (OSError, ssl.SSLError) as e:
                logger.error(f"Error setting up TLS for MQTT: {e}", exc_info=True)
                self.client = None
                return

            if settings.mqtt_use_tls and settings.mqtt_port == 1883:
                logger.warning("TLS enabled but port is 1883. Consider using port 8883 for MQTT over TLS.")

            if settings.mqtt_username and settings.mqtt_password:
                self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

            protocol = "TLS" if settings.mqtt_use_tls else "TCP"
            logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port} over {protocol}")
            try:
                self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
            except OSError as conn_error:
                logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
            # Network loop runs in its own thread and keeps retrying
            self.client.loop_start()

    def disconnect(self):
        """Disconnect from MQTT broker."""
        with self._lock:
            if self.client:
                self.client.loop_stop()
                self.client.disconnect()
                self.is_connected = False
                logger.info("MQTT client disconnected")

    def is_running(self) -> bool:
        """Check if MQTT service is running and connected."""
        return self.is_connected and self.client is not None


mqtt_service = MQTTService()
