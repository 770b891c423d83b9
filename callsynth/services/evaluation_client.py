import base64
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from loguru import logger

from callsynth.core.config import settings
from callsynth.core.errors import EvaluationApiError
from callsynth.models.contact import Agent, Contact


class EvaluagentClient:
    """Client for the evaluation platform's import API.

    Every call is a single attempt authenticated with the pre-shared key.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0):
        self.api_key = api_key or settings.evaluagent_api_key
        if not self.api_key:
            raise EvaluationApiError("EVALUAGENT_API_KEY not configured")
        self.base_url = (base_url or settings.evaluagent_api_url).rstrip("/")
        self.transport = transport
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        token = base64.b64encode(self.api_key.encode()).decode()
        return {"Authorization": f"Basic {token}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _get(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                resp = await client.get(endpoint, params=params)
            except httpx.HTTPError as e:
                raise EvaluationApiError(f"Error fetching {endpoint}: {e}") from e
        if resp.status_code != 200:
            raise EvaluationApiError(f"Error fetching {endpoint}: {resp.status_code}", resp.status_code)
        return _json_body(resp, endpoint)

    async def _get_data(self, endpoint: str) -> List[Dict[str, Any]]:
        return (await self._get(endpoint)).get("data") or []

    async def get_agents(self) -> List[Agent]:
        """Active users holding the "agent" role that have an email address."""
        roles = await self._get_data("/org/roles")
        agent_role = next((r for r in roles if r.get("attributes", {}).get("name") == "agent"), None)
        if agent_role is None:
            raise EvaluationApiError("Agent role not found in roles data")

        users = await self._get_data("/org/users")
        agents = []
        for user in users:
            attributes = user.get("attributes", {})
            role_ids = {r.get("id") for r in user.get("relationships", {}).get("roles", {}).get("data", [])}
            if agent_role["id"] not in role_ids or not attributes.get("active"):
                continue
            if not attributes.get("email"):
                continue
            agents.append(Agent(agent_id=str(user["id"]), name=attributes.get("fullname"),
                                email=attributes["email"]))

        logger.info(f"Found {len(agents)} agents")
        return agents

    async def upload_audio(self, audio_path: Union[str, Path]) -> str:
        """Upload a call recording and return the platform's storage path."""
        audio_path = Path(audio_path).resolve()
        if not audio_path.is_file():
            raise EvaluationApiError(f"Audio file not found: {audio_path}")

        logger.debug(f"Audio file being uploaded: {audio_path}")
        async with self._client() as client:
            try:
                resp = await client.post(
                    "/quality/imported-contacts/upload-audio",
                    files={"audio_file": (audio_path.name, audio_path.read_bytes(), "audio/mpeg")},
                )
            except httpx.HTTPError as e:
                raise EvaluationApiError(f"Audio upload failed for {audio_path}: {e}") from e

        if resp.status_code not in (200, 201):
            raise EvaluationApiError(f"Audio upload failed: {resp.status_code} {resp.text[:120]}",
                                     resp.status_code)
        path = _json_body(resp, "upload-audio").get("path")
        if not path:
            raise EvaluationApiError("Upload failed. No path returned.")
        logger.info(f"path_to_audio: {path}")
        return path

    async def send_contact(self, contact: Contact) -> str:
        """Submit an imported contact and return the platform's message."""
        logger.info(f"Target file is {contact.data.metadata.Filename}. Assigned agent is {contact.data.agent_email}")
        async with self._client() as client:
            try:
                resp = await client.post("/quality/imported-contacts", json=contact.payload())
            except httpx.HTTPError as e:
                raise EvaluationApiError(f"Error sending contact {contact.data.reference}: {e}") from e

        if resp.status_code >= 400:
            raise EvaluationApiError(
                f"Error sending contact {contact.data.reference}: {resp.status_code} {resp.text[:200]}",
                resp.status_code,
            )
        body = _json_body(resp, "imported-contacts")
        if body.get("errors"):
            raise EvaluationApiError(f"{contact.data.reference} - {body['errors']}", resp.status_code)
        message = body.get("message", "")
        logger.info(f"{contact.data.reference} - {message}")
        return message

    async def fetch_recent_evaluations(self, hours: int = 24, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Evaluations published in the last ``hours``, newest first.

        Returns the raw response body so the included contacts stay
        available alongside ``data``.
        """
        now = now or datetime.now(timezone.utc).astimezone()
        since = now - timedelta(hours=hours)
        window = ",".join(moment.isoformat(timespec="seconds") for moment in (since, now))
        params = {
            "filter[published_at;between]": window,
            "sort": "-published_at",
            "include": "contacts",
        }
        body = await self._get("/quality/evaluations", params=params)
        logger.info(f"Fetched {len(body.get('data') or [])} evaluations from the last {hours} hours")
        return body


def _json_body(resp: httpx.Response, endpoint: str) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError as e:
        raise EvaluationApiError(
            f"Unreadable response from {endpoint}: {resp.status_code} {resp.text[:120]}",
            resp.status_code,
        ) from e
    if not isinstance(body, dict):
        raise EvaluationApiError(f"Unexpected response from {endpoint}: {resp.text[:120]}", resp.status_code)
    return body


def record_reference(log_path: Union[str, Path], reference: str) -> List[str]:
    """Append a contact reference to the JSON reference log.

    An empty log starts a new list. A log that is not a JSON list is moved
    aside to ``<name>.corrupt`` before a new one is started.
    """
    log_path = Path(log_path)
    references = []
    if log_path.exists():
        text = log_path.read_text(encoding="utf-8")
        if text.strip():
            try:
                references = json.loads(text)
            except ValueError:
                references = None
            if not isinstance(references, list):
                corrupt = log_path.with_name(log_path.name + ".corrupt")
                logger.warning(f"Reference log {log_path} is not a JSON list, moved to {corrupt}")
                log_path.replace(corrupt)
                references = []
    references.append(reference)

    temp_path = log_path.with_name(log_path.name + ".tmp")
    temp_path.write_text(json.dumps(references, indent=2), encoding="utf-8")
    temp_path.replace(log_path)
    return references
