"""GET /v1/accounts/{user_id}/link-suggestions - Suggest account-to-bucket links"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from allocation_planner.api.v1.schemas import LinkSuggestionSchema, LinkSuggestionsResponse
from allocation_planner.infrastructure.database.session import get_db
from allocation_planner.infrastructure.database.repositories import SnapshotRepository
from allocation_planner.domain.accounts import suggest_bucket_links

router = APIRouter()


@router.get("/accounts/{user_id}/link-suggestions", response_model=LinkSuggestionsResponse)
def get_link_suggestions(user_id: str, db: Session = Depends(get_db)):
    """
    Suggest which bucket each connected account should back.

    Returns:
        At most one suggestion per account, from the latest analysis
    """
    record = SnapshotRepository(db).get_latest(user_id)

    if not record:
        raise HTTPException(status_code=404, detail="No financial analysis for user")

    _, accounts, _ = SnapshotRepository.to_domain(record)
    suggestions = [
        LinkSuggestionSchema.model_validate(suggestion, from_attributes=True)
        for suggestion in suggest_bucket_links(accounts)
    ]

    return LinkSuggestionsResponse(user_id=user_id, suggestions=suggestions)
