# app/services/paper_bank.py
"""
Cliente del banco de preguntas (servicio externo).

Sólo se consulta UNA vez, al crear la sesión; el resultado se congela como
paper snapshot y nunca se vuelve a leer.
"""
import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from app.core.errors import NotFoundError, PaperBankError
from app.core.settings import PAPER_BANK_URL, PAPER_BANK_TOKEN, PAPER_BANK_TIMEOUT

log = logging.getLogger("paper_bank")


def make_session(retries: int = 3) -> requests.Session:
    """Session con reintentos (para 429/5xx), igual para http y https."""
    s = requests.Session()
    adapter = HTTPAdapter(
        max_retries=Retry(
            total=retries,
            backoff_factor=1.2,
            status_forcelist=(408, 429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET"]),
            raise_on_status=False,
        )
    )
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s

_session = make_session()


class PaperBankClient:
    def __init__(self, base_url: str = PAPER_BANK_URL, token: str = PAPER_BANK_TOKEN,
                 timeout: int = PAPER_BANK_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or _session

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def fetch_paper(self, paper_id: str) -> Dict[str, Any]:
        if not self.enabled:
            raise PaperBankError("PAPER_BANK_URL no está definido")
        url = f"{self.base_url}/papers/{paper_id}"
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("paper %s: request failed: %s", paper_id, e)
            raise PaperBankError("No se pudo contactar el banco de preguntas") from e

        if resp.status_code == 404:
            raise NotFoundError("Cuestionario no encontrado")
        if resp.status_code != 200:
            log.warning("paper %s: non-200 %s body=%s", paper_id, resp.status_code, resp.text[:300])
            raise PaperBankError(f"Banco de preguntas respondió {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise PaperBankError("Respuesta inválida del banco de preguntas") from e

        # algunos despliegues envuelven el recurso: {"data": {...}}
        paper = data.get("data", data) if isinstance(data, dict) else None
        if not isinstance(paper, dict) or not isinstance(paper.get("questions"), list):
            raise PaperBankError("El cuestionario no trae preguntas")
        paper.setdefault("paperId", str(paper_id))
        log.info("paper %s fetched (%d questions)", paper_id, len(paper["questions"]))
        return paper


def get_paper_bank() -> PaperBankClient:
    """Dependency de FastAPI; los tests la sobreescriben."""
    return PaperBankClient()
