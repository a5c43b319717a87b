"""
Repo integration utilities using the generic CRUD helpers.

A repo integration links one of a user's GitHub repositories to the Vercel
project it deploys to and the Supabase project it uses. No secrets live here.
Every function requires the owner's user_id.
"""

from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..db.db_integration_models import RepoIntegration
from ..exceptions import validation_failed
from ..schemas.integration_schemas import RepoIntegrationCreate, RepoIntegrationRead
from .crud_helpers import delete_record, get_record, list_records, upsert_record


def _owner(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise validation_failed("user_id", user_id, "an owner is required")
    return user_id


def get_repo_integration(
    session: Session, user_id: str, repo_full_name: str
) -> Optional[RepoIntegrationRead]:
    """Get the link for one repository, or None."""
    record = get_record(
        session, RepoIntegration, {"repo_full_name": repo_full_name}, _owner(user_id)
    )
    if record is None:
        return None
    return RepoIntegrationRead.model_validate(record)


def list_repo_integrations(session: Session, user_id: str) -> List[RepoIntegrationRead]:
    """List all repository links for a user."""
    records = list_records(
        session, RepoIntegration, user_id=_owner(user_id), order_by="repo_full_name"
    )
    return [RepoIntegrationRead.model_validate(record) for record in records]


def save_repo_integration(
    session: Session,
    user_id: str,
    repo_full_name: str,
    vercel_project_id: Optional[str] = None,
    supabase_project_ref: Optional[str] = None,
    vercel_project_name: Optional[str] = None,
) -> str:
    """
    Create or replace the link for a repository.

    Args:
        session: Database session
        user_id: Owner identifier
        repo_full_name: Repository as "owner/name"
        vercel_project_id: Optional Vercel project id
        supabase_project_ref: Optional Supabase project ref
        vercel_project_name: Optional Vercel project display name

    Returns:
        Record ID

    Raises:
        ValidationError: If the input is invalid
    """
    _owner(user_id)
    try:
        link = RepoIntegrationCreate(
            user_id=user_id,
            repo_full_name=repo_full_name,
            vercel_project_id=vercel_project_id,
            vercel_project_name=vercel_project_name,
            supabase_project_ref=supabase_project_ref,
        )
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else "repo_integration"
        raise validation_failed(field, first.get("input"), first["msg"], cause=e) from e

    record = upsert_record(
        session,
        RepoIntegration,
        lookup={"repo_full_name": link.repo_full_name},
        data={
            "vercel_project_id": link.vercel_project_id,
            "vercel_project_name": link.vercel_project_name,
            "supabase_project_ref": link.supabase_project_ref,
        },
        user_id=link.user_id,
    )
    return record.id  # type: ignore[return-value]


def delete_repo_integration(session: Session, user_id: str, repo_full_name: str) -> bool:
    """
    Remove the link for a repository.

    Returns:
        True if deleted, False if not found
    """
    user_id = _owner(user_id)
    record = get_record(session, RepoIntegration, {"repo_full_name": repo_full_name}, user_id)
    if record is None:
        return False
    return delete_record(session, RepoIntegration, record.id, user_id)  # type: ignore[arg-type]
