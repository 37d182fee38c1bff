"""Mock plant diagnosis and the community feed of shared diagnoses.

No image analysis happens here: ``RandomDiagnosisEngine`` picks a disease
from the catalogue. A real classifier only has to implement
``DiagnosisEngine``.
"""
from __future__ import annotations

import logging
import random
from typing import NamedTuple, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agrilink.models import Diagnosis, Disease, User
from agrilink.services.errors import NotFoundError

logger = logging.getLogger(__name__)

AUTO_NOTES = "Diagnostic automatique"

DEFAULT_DISEASES = [
    {
        "name": "Mildiou de la tomate",
        "description": "Le mildiou est une maladie fongique qui affecte les feuilles, les tiges et les fruits des tomates.",
        "symptoms": ["Taches brunes sur les feuilles", "Pourriture des fruits", "Lésions sur les tiges"],
        "treatment": "Appliquer un fongicide à base de cuivre et améliorer la circulation d'air autour des plantes.",
        "affected_crops": ["tomates", "pommes de terre"],
    },
    {
        "name": "Oïdium",
        "description": "L'oïdium est une maladie fongique qui se manifeste par un revêtement blanc poudreux sur les feuilles et les tiges.",
        "symptoms": ["Poudre blanche sur les feuilles", "Jaunissement des feuilles", "Déformation des nouvelles pousses"],
        "treatment": "Appliquer du soufre ou un fongicide spécifique. Éviter l'arrosage par le dessus.",
        "affected_crops": ["céréales", "vignes", "légumes"],
    },
    {
        "name": "Rouille du blé",
        "description": "La rouille est une maladie fongique qui forme des pustules de couleur rouille sur les feuilles et les tiges.",
        "symptoms": ["Pustules orange-brunes", "Feuilles qui se dessèchent", "Réduction du rendement"],
        "treatment": "Utiliser des variétés résistantes et appliquer des fongicides préventifs.",
        "affected_crops": ["blé", "céréales"],
    },
    {
        "name": "Tavelure du pommier",
        "description": "La tavelure est une maladie fongique qui affecte principalement les pommiers et les poiriers.",
        "symptoms": ["Taches olive-noires sur les feuilles", "Lésions sur les fruits", "Craquelures sur les fruits"],
        "treatment": "Appliquer des fongicides préventifs au printemps et éliminer les feuilles mortes en automne.",
        "affected_crops": ["pommiers", "poiriers"],
    },
    {
        "name": "Mildiou de la vigne",
        "description": "Le mildiou de la vigne est une maladie fongique qui peut détruire rapidement les feuilles et les grappes.",
        "symptoms": ["Taches jaunes huileuses", "Duvet blanc sous les feuilles", "Brunissement des grappes"],
        "treatment": "Appliquer des fongicides à base de cuivre ou de soufre et tailler pour améliorer l'aération.",
        "affected_crops": ["vignes"],
    },
]

# Returned when the catalogue is empty.
FALLBACK_RESULT = {
    "disease_name": "Mildiou de la tomate",
    "description": "Le mildiou est une maladie fongique qui affecte les feuilles, les tiges et les fruits.",
    "treatment": "Appliquer un fongicide à base de cuivre et améliorer la circulation d'air autour des plantes.",
}


class DiagnosisResult(NamedTuple):
    disease: Disease | None
    disease_name: str
    confidence: int
    description: str
    treatment: str | None


class DiagnosisEngine(Protocol):
    def diagnose(self, image_key: str, diseases: Sequence[Disease]) -> DiagnosisResult:
        ...


class RandomDiagnosisEngine:
    """Pick a catalogued disease at random with 70-99% confidence."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def diagnose(self, image_key: str, diseases: Sequence[Disease]) -> DiagnosisResult:
        confidence = self._rng.randint(70, 99)
        if not diseases:
            return DiagnosisResult(disease=None, confidence=confidence, **FALLBACK_RESULT)
        disease = self._rng.choice(list(diseases))
        return DiagnosisResult(
            disease=disease,
            disease_name=disease.name,
            confidence=confidence,
            description=disease.description,
            treatment=disease.treatment,
        )


class CommunityItem(NamedTuple):
    diagnosis: Diagnosis
    user: User
    disease: Disease | None


def seed_diseases(db: Session) -> int:
    """Insert the default catalogue when no disease exists; return rows added."""
    count = db.scalar(select(func.count()).select_from(Disease))
    if count:
        return 0
    db.add_all(Disease(**row) for row in DEFAULT_DISEASES)
    db.commit()
    logger.info("Seeded %d diseases", len(DEFAULT_DISEASES))
    return len(DEFAULT_DISEASES)


def record_diagnosis(
    db: Session,
    *,
    user_id: int,
    image_key: str,
    engine: DiagnosisEngine,
) -> tuple[Diagnosis, DiagnosisResult]:
    diseases = list(db.scalars(select(Disease).order_by(Disease.id)))
    result = engine.diagnose(image_key, diseases)
    diagnosis = Diagnosis(
        user_id=user_id,
        disease_id=result.disease.id if result.disease is not None else None,
        image_key=image_key,
        confidence=result.confidence,
        notes=AUTO_NOTES,
    )
    db.add(diagnosis)
    db.commit()
    return diagnosis, result


def share_diagnosis(db: Session, *, user_id: int, diagnosis_id: int) -> Diagnosis:
    diagnosis = db.scalars(
        select(Diagnosis).where(
            Diagnosis.id == diagnosis_id, Diagnosis.user_id == user_id
        )
    ).one_or_none()
    if diagnosis is None:
        raise NotFoundError("Diagnosis not found")
    diagnosis.is_shared = True
    db.commit()
    return diagnosis


def _diseases_affecting(db: Session, crops: set[str]) -> list[int]:
    # The catalogue is small reference data; crop lists are JSON columns.
    return [
        disease.id
        for disease in db.scalars(select(Disease))
        if crops.intersection(disease.affected_crops or [])
    ]


def community_feed(
    db: Session,
    *,
    requester: User,
    crop: str | None = None,
    limit: int = 20,
) -> list[CommunityItem]:
    """Shared diagnoses, newest first.

    Filtered on the disease's affected crops: ``crop`` when given, otherwise
    any of the requester's crops. A requester with no crops sees everything.
    """
    if crop:
        wanted = {crop}
    else:
        wanted = set(requester.crops or [])

    stmt = (
        select(Diagnosis, User, Disease)
        .join(User, User.id == Diagnosis.user_id)
        .outerjoin(Disease, Disease.id == Diagnosis.disease_id)
        .where(Diagnosis.is_shared.is_(True))
    )
    if wanted:
        disease_ids = _diseases_affecting(db, wanted)
        if not disease_ids:
            return []
        stmt = stmt.where(Diagnosis.disease_id.in_(disease_ids))
    stmt = stmt.order_by(Diagnosis.created_at.desc(), Diagnosis.id.desc()).limit(limit)
    return [CommunityItem(d, u, disease) for d, u, disease in db.execute(stmt)]


__all__ = [
    "DEFAULT_DISEASES",
    "DiagnosisResult",
    "DiagnosisEngine",
    "RandomDiagnosisEngine",
    "CommunityItem",
    "seed_diseases",
    "record_diagnosis",
    "share_diagnosis",
    "community_feed",
]
