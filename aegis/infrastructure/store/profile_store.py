"""
profile_store.py
----------------
Perfiles de riesgo por usuario, en memoria y con duración de proceso.

El store es el único dueño de los perfiles: los lectores reciben copias
y la única mutación posible es record_outcome(). Un threading.Lock
serializa los accesos; ninguna sección crítica hace await, así que es
seguro tanto desde el event loop como desde threads del executor.

Reglas de evolución del perfil:
  - total_transactions       → +1 por cada veredicto registrado
  - suspicious_transactions  → +1 si risk_score > 70
  - recent_suspicious_activity → se activa con la primera tx sospechosa
                                 y nunca vuelve a False
  - risk_level               → HIGH si ratio > 0.3, MEDIUM si > 0.1

El mapa no tiene límite de tamaño (ver DESIGN.md, preguntas abiertas).
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from aegis.domain.schemas import RiskLevel, UserRiskProfile

logger = logging.getLogger(__name__)

SUSPICIOUS_SCORE_THRESHOLD = 70
HIGH_RISK_RATIO            = 0.3
MEDIUM_RISK_RATIO          = 0.1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserProfileStore:

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._profiles: dict[str, UserRiskProfile] = {}
        self._lock  = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def get(self, user_id: str) -> Optional[UserRiskProfile]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return profile.model_copy() if profile else None

    def get_or_create(self, user_id: str) -> UserRiskProfile:
        with self._lock:
            return self._get_or_create_locked(user_id).model_copy()

    def record_outcome(self, user_id: str, risk_score: float) -> UserRiskProfile:
        """Aplica el resultado de un veredicto al perfil del usuario."""
        with self._lock:
            profile = self._get_or_create_locked(user_id)

            profile.total_transactions += 1
            profile.last_updated = self._clock()

            if risk_score > SUSPICIOUS_SCORE_THRESHOLD:
                profile.suspicious_transactions   += 1
                profile.recent_suspicious_activity = True

            ratio = profile.suspicious_transactions / profile.total_transactions
            if ratio > HIGH_RISK_RATIO:
                new_level = RiskLevel.HIGH
            elif ratio > MEDIUM_RISK_RATIO:
                new_level = RiskLevel.MEDIUM
            else:
                new_level = RiskLevel.LOW

            if new_level != profile.risk_level:
                logger.info(
                    f"[ProfileStore] user={user_id}  "
                    f"risk_level {profile.risk_level.value} → {new_level.value}  "
                    f"ratio={ratio:.2f}"
                )
            profile.risk_level = new_level

            return profile.model_copy()

    def count_by_level(self, level: RiskLevel) -> int:
        with self._lock:
            return sum(1 for p in self._profiles.values() if p.risk_level == level)

    def _get_or_create_locked(self, user_id: str) -> UserRiskProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            now = self._clock()
            profile = UserRiskProfile(
                user_id      = user_id,
                created_at   = now,
                last_updated = now,
            )
            self._profiles[user_id] = profile
            logger.debug(f"[ProfileStore] Perfil creado para user={user_id}")
        return profile
