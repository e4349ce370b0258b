"""
Debezium Connector Manager - Manages CDC connectors via Kafka Connect REST API
"""

import json
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import requests

from cdcstreamer.config import StreamerConfig
from streamer.exceptions import RegistrationError

logger = logging.getLogger(__name__)


CONNECTIVITY_MARKERS = (
    'Communications link failure',
    'Connection refused',
    'could not connect',
    'Connection to',
    'timed out',
    'UnknownHostException',
)

CREDENTIAL_MARKERS = (
    'Access denied',
    'password authentication failed',
    'authentication failed',
    'no pg_hba.conf entry',
)


class ConnectResponse(NamedTuple):
    success: bool
    status_code: Optional[int]
    data: Optional[Any]
    error: Optional[str]


def classify_connector_error(raw_error: Optional[str]) -> Tuple[str, str]:
    """
    Turn Kafka Connect's raw error text into (kind, human readable cause).

    Kafka Connect surfaces the JDBC driver message verbatim, so the source
    database failure mode can be recognised from it.
    """
    text = raw_error or ''

    if any(marker.lower() in text.lower() for marker in CREDENTIAL_MARKERS):
        return RegistrationError.CREDENTIALS, 'Database access denied. Please check username and password.'

    if any(marker.lower() in text.lower() for marker in CONNECTIVITY_MARKERS):
        return RegistrationError.CONNECTIVITY, (
            'Cannot connect to database. Please verify:\n'
            '- Database is running and accessible\n'
            '- Host, port, username, and password are correct\n'
            '- Database is accessible from the Kafka Connect container'
        )

    return RegistrationError.OTHER, text or 'Kafka Connect rejected the connector configuration'


class DebeziumConnectorManager:
    """
    Manager class for Debezium Kafka Connect operations

    Handles:
    - Checking Kafka Connect health
    - Registering (create or update) connectors
    - Deleting connectors
    - Checking connector status
    """

    def __init__(self, config: Optional[StreamerConfig] = None):
        """Initialize Debezium manager from an explicit config (settings by default)"""
        self.config = config or StreamerConfig.from_settings()
        self.kafka_connect_url = self.config.kafka_connect_url.rstrip('/')
        self.timeout = self.config.request_timeout

        # API endpoints
        self.connectors_url = self.config.connectors_url

        logger.debug(f"DebeziumConnectorManager initialized with URL: {self.kafka_connect_url}")

    def _make_request(
        self,
        method: str,
        url: str,
        data: Optional[Dict] = None,
    ) -> ConnectResponse:
        """
        Make HTTP request to Kafka Connect API

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            url: Full URL
            data: Request body data

        Returns:
            ConnectResponse: (success, status_code, response_data, error_message)
        """
        headers = {'Accept': 'application/json', 'Content-Type': 'application/json'}

        try:
            response = requests.request(method, url, headers=headers, json=data, timeout=self.timeout)
        except requests.exceptions.Timeout:
            error_msg = f"Request timeout after {self.timeout} seconds"
            logger.error(f"{method} {url}: {error_msg}")
            return ConnectResponse(False, None, None, error_msg)
        except requests.exceptions.ConnectionError as e:
            error_msg = f"Connection error: {str(e)}"
            logger.error(f"{method} {url}: {error_msg}")
            return ConnectResponse(False, None, None, error_msg)
        except requests.exceptions.RequestException as e:
            error_msg = f"Request failed: {str(e)}"
            logger.error(f"{method} {url}: {error_msg}")
            return ConnectResponse(False, None, None, error_msg)

        logger.debug(f"method: {method}, url: {url}, status: {response.status_code}")

        # 200: OK, 201: Created, 202: Accepted (async operations), 204: No Content
        if response.status_code in (200, 201, 202, 204):
            if response.status_code == 204 or not response.text:
                return ConnectResponse(True, response.status_code, {}, None)
            try:
                return ConnectResponse(True, response.status_code, response.json(), None)
            except ValueError:
                return ConnectResponse(True, response.status_code, {}, None)

        error_message = response.text
        try:
            error_json = response.json()
            if isinstance(error_json, dict):
                error_message = error_json.get('message', error_message)
        except ValueError:
            pass

        # 404 is expected when checking if connector exists - log as debug
        if response.status_code == 404:
            logger.debug(f"Resource not found: {method} {url}")
        else:
            logger.error(f"Request failed: {method} {url} - Status: {response.status_code} - {error_message}")

        return ConnectResponse(False, response.status_code, None, error_message)

    def check_kafka_connect_health(self) -> Tuple[bool, Optional[str]]:
        """
        Check if Kafka Connect is running and healthy

        Returns:
            Tuple[bool, Optional[str]]: (is_healthy, error_message)
        """
        result = self._make_request('GET', self.kafka_connect_url)
        if result.success:
            logger.debug("Kafka Connect is healthy")
            return True, None
        return False, result.error or f"HTTP {result.status_code}"

    def list_connectors(self) -> List[str]:
        """
        List all existing connectors

        Returns:
            List[str]: List of connector names (empty when Kafka Connect is unreachable)
        """
        result = self._make_request('GET', self.connectors_url)
        if result.success and isinstance(result.data, list):
            logger.debug(f"Found {len(result.data)} connectors")
            return result.data
        if not result.success:
            logger.error(f"Failed to list connectors: {result.error}")
        return []

    def get_connector(self, connector_name: str) -> Optional[Dict]:
        """
        Fetch a connector definition.

        Returns:
            Optional[Dict]: connector info, or None when Kafka Connect answers 404

        Raises:
            RegistrationError: on any other failure (unreachable, 5xx, ...)
        """
        url = f"{self.connectors_url}/{connector_name}"
        result = self._make_request('GET', url)

        if result.success:
            return result.data or {}
        if result.status_code == 404:
            return None

        kind = RegistrationError.CONNECTIVITY if result.status_code is None else RegistrationError.OTHER
        raise RegistrationError(
            f"Error checking connector {connector_name}: {result.error}",
            kind=kind,
            raw_error=result.error,
            status_code=result.status_code,
        )

    def get_connector_status(self, connector_name: str) -> Tuple[bool, Optional[Dict]]:
        """
        Get connector status

        Returns:
            Tuple[bool, Optional[Dict]]: (exists, status_data)
        """
        url = f"{self.connectors_url}/{connector_name}/status"
        result = self._make_request('GET', url)

        if result.success and result.data:
            state = result.data.get('connector', {}).get('state', 'UNKNOWN')
            logger.debug(f"Connector {connector_name} status: {state}")
            return True, result.data
        if result.status_code != 404:
            logger.error(f"Failed to get connector status: {result.error}")
        return False, None

    def create_connector(self, connector_name: str, config: Dict[str, Any]) -> ConnectResponse:
        """POST a new connector definition"""
        request_body = {
            "name": connector_name,
            "config": config,
        }
        return self._make_request('POST', f"{self.connectors_url}/", request_body)

    def update_connector_config(self, connector_name: str, new_config: Dict[str, Any]) -> ConnectResponse:
        """PUT a full replacement configuration for an existing connector"""
        url = f"{self.connectors_url}/{connector_name}/config"
        return self._make_request('PUT', url, new_config)

    def register_connector(self, connector_name: str, config: Dict[str, Any]) -> str:
        """
        Create the connector, or update it when it already exists.

        Returns:
            str: 'created' or 'updated'

        Raises:
            RegistrationError: when Kafka Connect rejects or cannot be reached
        """
        existing = self.get_connector(connector_name)

        if existing is not None:
            logger.info(f"Updating existing Debezium connector: {connector_name}")
            result = self.update_connector_config(connector_name, config)
            action = 'updated'
        else:
            logger.info(f"Creating new Debezium connector: {connector_name}")
            result = self.create_connector(connector_name, config)
            action = 'created'

        if not result.success:
            if result.status_code is None:
                kind, cause = RegistrationError.CONNECTIVITY, (
                    f"Cannot reach Kafka Connect at {self.kafka_connect_url}: {result.error}"
                )
            else:
                kind, cause = classify_connector_error(result.error)
            logger.error(f"Failed to register connector {connector_name} ({kind}): {result.error}")
            raise RegistrationError(cause, kind=kind, raw_error=result.error, status_code=result.status_code)

        logger.info(f"Debezium connector {action} successfully: {connector_name}")
        return action

    def delete_connector(self, connector_name: str) -> Tuple[bool, Optional[str]]:
        """
        Delete a connector. A connector that does not exist counts as deleted.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        check = self._make_request('GET', f"{self.connectors_url}/{connector_name}")

        if check.status_code == 404:
            logger.info(f"Debezium connector does not exist, nothing to delete: {connector_name}")
            return True, None
        if not check.success:
            return False, f"Error checking connector: {check.error}"

        result = self._make_request('DELETE', f"{self.connectors_url}/{connector_name}")
        if result.success or result.status_code == 404:
            logger.info(f"Successfully deleted connector: {connector_name}")
            return True, None

        logger.error(f"Failed to delete connector {connector_name}: {result.error}")
        return False, result.error


def dumps_config(config: Dict[str, Any]) -> str:
    """Render a connector config for logs with the password masked"""
    masked = {k: ('********' if 'password' in k else v) for k, v in config.items()}
    return json.dumps(masked, indent=2, sort_keys=True)
