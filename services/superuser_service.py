"""Superuser lookups gating diagnostic evaluation metadata"""

import logging
from typing import Optional

from models import db
from models.study_code import StudyCode

logger = logging.getLogger(__name__)


def is_superuser(study_code_id: Optional[str]) -> bool:
    """
    Check whether a study code belongs to a superuser.

    Returns False for a missing id, an unknown code or any database error;
    metadata gating must never break an evaluation.
    """
    if not study_code_id:
        return False

    try:
        study_code = db.session.get(StudyCode, study_code_id)
    except Exception as e:
        logger.error(f"Error checking superuser status for {study_code_id}: {e}")
        db.session.rollback()
        return False

    return bool(study_code and study_code.is_superuser)


def should_include_metadata(
    study_code_id: Optional[str],
    superuser_override: Optional[bool] = None,
    allow_override: bool = False
) -> bool:
    """
    Decide whether evaluation internals are shown.

    An override of False always hides metadata. An override of True is only
    trusted when allow_override is set (development deployments); otherwise
    the study code must be a superuser in the database.
    """
    if superuser_override is False:
        logger.info("Superuser metadata (override): False")
        return False

    if superuser_override is True and allow_override:
        logger.info("Superuser metadata (override): True")
        return True

    include = is_superuser(study_code_id)
    logger.info(f"Superuser metadata (database): {include}")
    return include
