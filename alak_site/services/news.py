from ..models import NEWS_STATUS_APPROVED, NEWS_STATUS_PENDING, NEWS_STATUS_REJECTED
from ..repository import news
from ..utils import clean_text, utc_now_naive

REVIEW_DECISIONS = {
    'approve': NEWS_STATUS_APPROVED,
    'reject': NEWS_STATUS_REJECTED,
}


class InvalidTransition(ValueError):
    pass


def review_article(article, decision, reviewer=None, notes=None, now=None):
    """Approve or reject a pending article. Reviewed articles never move back."""
    target = REVIEW_DECISIONS.get(decision)
    if target is None:
        raise InvalidTransition(f'Unknown review decision: {decision}')
    if article.auto_post_status != NEWS_STATUS_PENDING:
        raise InvalidTransition(
            f'Article is already {article.auto_post_status}; only pending articles can be reviewed.'
        )
    return news.set_review(
        article,
        target,
        reviewer_id=getattr(reviewer, 'id', None),
        notes=clean_text(notes, 2000) or None,
        reviewed_at=now or utc_now_naive(),
    )
