"""
RouterOS Device Sync - MikroTik OpenVPN Server Certificates

Installs server certificates on a RouterOS appliance:
1. remove any certificate with the same name (best effort)
2. upload cert+key as one PEM file over FTP, under a per-run unique name
3. ``/certificate/import`` the uploaded file
4. point ``/interface/ovpn-server/server`` at the new certificate (best effort)
5. delete the uploaded file, whatever happened in 3
"""

import ftplib
import io
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from librouteros import connect
from librouteros.exceptions import LibRouterosError, TrapError

from ...errors import DeviceConnectionError, ImportFailedError
from ..models import ServerCertificate
from .base import DeviceSyncClient, SyncResult

logger = logging.getLogger(__name__)


def _is_missing_item(error: Exception) -> bool:
    message = str(error).lower()
    return "no such item" in message or "not found" in message


class RouterOSDeviceClient(DeviceSyncClient):
    """
    RouterOS API + FTP client for certificate sync.

    The API connection is opened lazily and reused until ``close()``.
    """

    # Retry backoff between connection attempts (seconds)
    CONNECT_BACKOFF_SECONDS = [1, 3, 9]
    ARTIFACT_DIR = "flash"

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        api_port: int = 8728,
        ftp_port: int = 21,
        timeout: int = 10,
        configure_ovpn: bool = True,
        connect_fn: Callable = connect,
        ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.host = host
        self.username = username
        self._password = password
        self.api_port = api_port
        self.ftp_port = ftp_port
        self.timeout = timeout
        self.configure_ovpn = configure_ovpn
        self._connect_fn = connect_fn
        self._ftp_factory = ftp_factory
        self._sleep = sleep
        self._clock = clock
        self._api = None

    # === Connection ===

    @property
    def api(self):
        if self._api is None:
            self._api = self._connect()
        return self._api

    def _connect(self):
        attempts = [0] + self.CONNECT_BACKOFF_SECONDS
        last_error: Optional[Exception] = None
        for attempt, delay in enumerate(attempts, start=1):
            if delay:
                self._sleep(delay)
            try:
                api = self._connect_fn(
                    host=self.host,
                    username=self.username,
                    password=self._password,
                    port=self.api_port,
                    timeout=self.timeout,
                )
                logger.info(f"Connected to RouterOS device {self.host}")
                return api
            except (LibRouterosError, OSError) as e:
                last_error = e
                logger.warning(f"RouterOS connection attempt {attempt}/{len(attempts)} to {self.host} failed: {e}")
        raise DeviceConnectionError(self.host, str(last_error))

    def close(self) -> None:
        if self._api is not None:
            try:
                self._api.close()
            finally:
                self._api = None

    # === Sync ===

    def push_server_certificate(self, record: ServerCertificate) -> SyncResult:
        cert_name = record.name or f"ovpn-server-{record.serial_number[:8]}"
        if not record.private_key_pem:
            raise ImportFailedError(cert_name, "record carries no private key")

        logger.info(f"Updating server certificate {cert_name} on {self.host}")
        result = SyncResult(cert_name=cert_name)

        # 1. Remove the previous certificate; a failure here is tolerated
        try:
            self._remove_certificate(cert_name)
        except LibRouterosError as e:
            msg = f"Could not remove existing certificate {cert_name}: {e}"
            logger.warning(msg)
            result.warnings.append(msg)

        # 2-3. Upload and import; 5. always clean up the upload
        artifact = f"{self.ARTIFACT_DIR}/{cert_name}_{self._clock().strftime('%Y%m%d%H%M%S')}.pem"
        result.artifact = artifact
        try:
            self._upload(artifact, record.certificate_pem + "\n" + record.private_key_pem)
            self._import(cert_name, artifact)
        finally:
            warning = self._cleanup(artifact)
            if warning:
                result.warnings.append(warning)

        logger.info(f"Certificate {cert_name} imported on {self.host}")

        # 4. Point the OpenVPN server at the new certificate
        if self.configure_ovpn:
            try:
                result.service_updated = self._configure_ovpn_server(cert_name)
            except LibRouterosError as e:
                msg = f"OpenVPN server not reconfigured for {cert_name}: {e}"
                logger.warning(msg)
                result.warnings.append(msg)

        return result

    def _remove_certificate(self, cert_name: str) -> bool:
        path = self.api.path("certificate")
        ids = [item[".id"] for item in path if item.get("name") == cert_name]
        if not ids:
            logger.debug(f"No certificate named {cert_name} on device")
            return False
        path.remove(*ids)
        logger.info(f"Removed certificate {cert_name} from device")
        return True

    def _upload(self, remote_name: str, content: str) -> None:
        ftp = self._ftp_factory()
        connected = False
        try:
            ftp.connect(self.host, self.ftp_port, timeout=self.timeout)
            connected = True
            ftp.login(self.username, self._password)
            ftp.storbinary(f"STOR /{remote_name}", io.BytesIO(content.encode()))
        except ftplib.all_errors as e:
            raise ImportFailedError(remote_name, f"FTP upload failed: {e}") from e
        finally:
            if connected:
                try:
                    ftp.quit()
                except ftplib.all_errors:
                    ftp.close()
        logger.info(f"Uploaded {remote_name} to {self.host}")

    def _import(self, cert_name: str, artifact: str) -> None:
        try:
            tuple(self.api.path("certificate")("import", **{"file-name": artifact, "name": cert_name}))
        except LibRouterosError as e:
            raise ImportFailedError(cert_name, str(e)) from e

    def _cleanup(self, artifact: str) -> Optional[str]:
        """Delete an uploaded file; returns a warning instead of raising."""
        logger.debug(f"Removing temporary file {artifact}")
        try:
            self.api.path("file").remove(artifact)
        except TrapError as e:
            if _is_missing_item(e):
                logger.debug(f"Temporary file {artifact} already gone")
                return None
            msg = f"Could not remove temporary file {artifact}: {e}"
            logger.warning(msg)
            return msg
        except (LibRouterosError, DeviceConnectionError) as e:
            msg = f"Could not remove temporary file {artifact}: {e}"
            logger.warning(msg)
            return msg
        return None

    def _configure_ovpn_server(self, cert_name: str) -> bool:
        server = self.api.path("interface", "ovpn-server", "server")
        tuple(server("set", certificate=cert_name))

        current = [item.get("certificate") for item in server]
        if current and current[0] == cert_name:
            logger.info(f"OpenVPN server now uses certificate {cert_name}")
            return True
        logger.warning(f"OpenVPN server still reports certificate {current[0] if current else None}")
        return False

    # === Inspection ===

    def get_certificate_status(self, cert_name: str) -> Optional[Dict[str, str]]:
        """Device-side attributes of a certificate, or None if absent."""
        for item in self.api.path("certificate"):
            if item.get("name") == cert_name:
                return dict(item)
        return None

    def list_certificates(self) -> List[Dict[str, str]]:
        return [dict(item) for item in self.api.path("certificate")]
