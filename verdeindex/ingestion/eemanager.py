"""
Module `ingestion.eemanager` provides the EarthEngineManager class to
encapsulate Google Earth Engine initialization, retries, and Landsat
collection retrieval.
"""

import os
import json
import time
from typing import Optional, Any

import ee
from ee import EEException
from google.oauth2.credentials import Credentials

from verdeindex.core.logger import Logger


class EarthEngineManager:
    """
    Manages interaction with Google Earth Engine: initialization, retries, and
    collection retrieval.
    """

    def __init__(
        self,
        credential_path: Optional[str] = None,
        project: Optional[str] = None,
        logger=None,
    ):
        self.credential_path = credential_path
        # Refresh-token JSON (or a path to it) for non-interactive auth
        self.token_env = os.getenv("EARTHENGINE_TOKEN")
        self.project = project or os.getenv("VERDEINDEX_EE_PROJECT")
        self.logger = logger or Logger.get_logger(__name__)
        self._initialized = False

    def _token_credentials(self) -> Any:
        creds_data = None
        if os.path.exists(self.token_env):
            with open(self.token_env, "r", encoding="utf-8") as fh:
                creds_data = json.load(fh)
        else:
            try:
                creds_data = json.loads(self.token_env)
            except json.JSONDecodeError:
                self.logger.warning("EARTHENGINE_TOKEN is neither a file nor JSON")
        if not creds_data or "refresh_token" not in creds_data:
            return None
        return Credentials(
            None,
            refresh_token=creds_data.get("refresh_token"),
            token_uri=creds_data.get("token_uri", ee.oauth.TOKEN_URI),
            client_id=creds_data.get("client_id", ee.oauth.CLIENT_ID),
            client_secret=creds_data.get("client_secret", ee.oauth.CLIENT_SECRET),
            scopes=creds_data.get("scopes", ee.oauth.SCOPES),
            quota_project_id=creds_data.get("project"),
        )

    def initialize(self, force: bool = False) -> None:
        """
        Authenticate & initialize Earth Engine once per manager.
        Uses a service-account JSON when given, then EARTHENGINE_TOKEN, then
        the default credentials; falls back to interactive auth.
        """
        if self._initialized and not force:
            return
        project = self.project
        try:
            if self.credential_path:
                sa_credentials: Any = ee.ServiceAccountCredentials(
                    None, self.credential_path  # type: ignore[arg-type]
                )
                ee.Initialize(sa_credentials, project=project)
            elif self.token_env and (creds := self._token_credentials()) is not None:
                ee.Initialize(creds, project=project)
            else:
                ee.Initialize(project=project)
        except EEException:
            ee.Authenticate()
            ee.Initialize(project=project)
        self._initialized = True

    def safe_get_info(self, obj, max_retries: int = 3):
        """
        Wrapper for obj.getInfo() that retries transient errors with
        exponential backoff, re-authenticates once on PERMISSION_DENIED and
        raises after max_retries.
        """
        for attempt in range(1, max_retries + 1):
            try:
                return obj.getInfo()
            except EEException as e:
                msg = str(e)
                if "PERMISSION_DENIED" in msg and attempt == 1:
                    self.logger.error(
                        "Earth Engine permission denied. Re-authenticating..."
                    )
                    ee.Authenticate()
                    self.initialize(force=True)
                    continue
                if attempt < max_retries:
                    backoff = 2 ** (attempt - 1)
                    self.logger.warning(
                        "Transient EE error (attempt %d/%d): %s - retrying in %ds",
                        attempt,
                        max_retries,
                        msg,
                        backoff,
                    )
                    time.sleep(backoff)
                    continue
                self.logger.error(
                    "Failed to getInfo() after %d attempts: %s", attempt, msg
                )
                raise
        raise RuntimeError("getInfo() retries exhausted")

    def get_image_collection(
        self,
        collection_id: str,
        start_date: str,
        end_date: str,
        region: ee.Geometry,
        cloud_cover: tuple[float, float] = (0, 100),
    ) -> ee.ImageCollection:
        """
        Return an EE ImageCollection filtered by date (end exclusive), region
        and scene-level CLOUD_COVER (both bounds inclusive).
        """
        cloud_min, cloud_max = cloud_cover
        return (
            ee.ImageCollection(collection_id)
            .filterDate(start_date, end_date)
            .filterBounds(region)
            .filter(
                ee.Filter.And(
                    ee.Filter.gte("CLOUD_COVER", cloud_min),
                    ee.Filter.lte("CLOUD_COVER", cloud_max),
                )
            )
        )


# Convenience singleton
ee_manager = EarthEngineManager()
