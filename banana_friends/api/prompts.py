"""
Read API over the community prompt gallery
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
from banana_friends.api.errors import NotFoundError
from banana_friends.api.schemas import CommunityPromptResponse, CommunityStatsResponse, LikeResponse
from banana_friends.database import get_db, CommunityPrompt
logger = logging.getLogger(__name__)
router = APIRouter()

ALL_CATEGORIES = "All"
SORT_FIELDS = {
    "likes": CommunityPrompt.likes,
    "created_at": CommunityPrompt.created_at,
    "title": CommunityPrompt.title,
}


def _active(db: Session, category: Optional[str] = None):
    query = db.query(CommunityPrompt).filter(CommunityPrompt.is_active.is_(True))
    if category and category != ALL_CATEGORIES:
        query = query.filter(CommunityPrompt.category == category)
    return query


def list_prompts(db: Session, category: Optional[str] = None, limit: int = 50,
                 sort_by: str = "likes", sort_order: str = "desc") -> List[CommunityPrompt]:
    column = SORT_FIELDS[sort_by]
    query = _active(db, category).order_by(column.asc() if sort_order == "asc" else column.desc(), CommunityPrompt.id)
    if limit > 0:
        query = query.limit(limit)
    return query.all()


@router.get("/community-prompts", response_model=List[CommunityPromptResponse])
def get_prompts(
    category: Optional[str] = None,
    limit: int = Query(50, ge=0, le=1000),
    sort_by: str = Query("likes", pattern="^(likes|created_at|title)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db)
):
    """Active prompts; category=All or no category means every category, limit=0 means no limit"""
    return list_prompts(db, category, limit, sort_by, sort_order)


@router.get("/community-prompts/categories", response_model=List[str])
def get_categories(db: Session = Depends(get_db)):
    rows = (
        db.query(CommunityPrompt.category)
        .filter(CommunityPrompt.is_active.is_(True), CommunityPrompt.category.isnot(None))
        .distinct()
        .all()
    )
    return [ALL_CATEGORIES] + sorted(row.category for row in rows)


@router.get("/community-prompts/search", response_model=List[CommunityPromptResponse])
def search_prompts(
    q: str = Query(..., min_length=1),
    category: Optional[str] = None,
    limit: int = Query(20, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    """Case-insensitive match in title or prompt, most liked first"""
    pattern = "%" + q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
    return (
        _active(db, category)
        .filter(or_(
            CommunityPrompt.title.ilike(pattern, escape="\\"),
            CommunityPrompt.prompt.ilike(pattern, escape="\\"),
        ))
        .order_by(CommunityPrompt.likes.desc(), CommunityPrompt.id)
        .limit(limit)
        .all()
    )


@router.get("/community-prompts/popular", response_model=List[CommunityPromptResponse])
def popular_prompts(limit: int = Query(10, ge=1, le=1000), db: Session = Depends(get_db)):
    return list_prompts(db, limit=limit, sort_by="likes")


@router.get("/community-prompts/recent", response_model=List[CommunityPromptResponse])
def recent_prompts(limit: int = Query(10, ge=1, le=1000), db: Session = Depends(get_db)):
    return list_prompts(db, limit=limit, sort_by="created_at")


@router.get("/community-prompts/stats", response_model=CommunityStatsResponse)
def prompt_stats(db: Session = Depends(get_db)):
    total, categories, likes = (
        db.query(
            func.count(CommunityPrompt.id),
            func.count(func.distinct(CommunityPrompt.category)),
            func.coalesce(func.sum(CommunityPrompt.likes), 0),
        )
        .filter(CommunityPrompt.is_active.is_(True))
        .one()
    )
    return CommunityStatsResponse(
        totalPrompts=total,
        categories=categories,
        totalLikes=likes,
        averageLikes=int(likes / total + 0.5) if total else 0,
    )


@router.get("/community-prompts/{prompt_id}", response_model=CommunityPromptResponse)
def get_prompt(prompt_id: int, db: Session = Depends(get_db)):
    prompt = _active(db).filter(CommunityPrompt.id == prompt_id).first()
    if prompt is None:
        raise NotFoundError(f"Prompt {prompt_id} not found")
    return prompt


@router.post("/community-prompts/{prompt_id}/like", response_model=LikeResponse)
def like_prompt(prompt_id: int, db: Session = Depends(get_db)):
    """Increment likes in the database so concurrent likes are never lost"""
    updated = (
        db.query(CommunityPrompt)
        .filter(CommunityPrompt.id == prompt_id)
        .update({CommunityPrompt.likes: CommunityPrompt.likes + 1}, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        raise NotFoundError(f"Prompt {prompt_id} not found")
    db.commit()
    likes = db.query(CommunityPrompt.likes).filter(CommunityPrompt.id == prompt_id).scalar()
    logger.info(f"Prompt {prompt_id} liked, now {likes} likes")
    return LikeResponse(id=prompt_id, likes=likes)
