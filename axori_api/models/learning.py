from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat

LEARNING_CONTENT_TYPES = ('term', 'article', 'path', 'lesson', 'quiz')
PROGRESS_STATUSES = ('viewed', 'in_progress', 'completed')


class LearningProgress(db.Model):
    __tablename__ = 'learning_progress'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'content_type', 'content_slug', name='uq_learning_progress'),
    )

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    content_type = db.Column(db.Enum(*LEARNING_CONTENT_TYPES, name='learning_content_type_enum'), nullable=False)
    content_slug = db.Column(db.String(255), nullable=False)
    status = db.Column(db.Enum(*PROGRESS_STATUSES, name='learning_progress_status_enum'),
                       nullable=False, default='viewed')
    progress_percent = db.Column(db.Integer, default=0)
    time_spent_seconds = db.Column(db.Integer, default=0)
    completed_at = db.Column(db.DateTime)
    last_accessed_at = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'content_type': self.content_type,
            'content_slug': self.content_slug,
            'status': self.status,
            'progress_percent': self.progress_percent,
            'time_spent_seconds': self.time_spent_seconds,
            'completed_at': isoformat(self.completed_at),
            'last_accessed_at': isoformat(self.last_accessed_at),
            'created_at': isoformat(self.created_at)
        }


class LearningBookmark(db.Model):
    __tablename__ = 'learning_bookmarks'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'content_type', 'content_slug', name='uq_learning_bookmark'),
    )

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    content_type = db.Column(db.Enum(*LEARNING_CONTENT_TYPES, name='learning_bookmark_type_enum'), nullable=False)
    content_slug = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'content_type': self.content_type,
            'content_slug': self.content_slug,
            'notes': self.notes,
            'created_at': isoformat(self.created_at)
        }


class LearningAchievement(db.Model):
    __tablename__ = 'learning_achievements'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'achievement_id', name='uq_learning_achievement'),
    )

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    achievement_id = db.Column(db.String(100), nullable=False)
    unlocked_at = db.Column(db.DateTime, default=utcnow)
    achievement_metadata = db.Column('metadata', JSONType)

    def to_dict(self):
        return {
            'id': str(self.id),
            'achievement_id': self.achievement_id,
            'unlocked_at': isoformat(self.unlocked_at),
            'metadata': self.achievement_metadata
        }


class QuizAttempt(db.Model):
    __tablename__ = 'learning_quiz_attempts'

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    quiz_slug = db.Column(db.String(255), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False)
    max_score = db.Column(db.Integer, nullable=False)
    answers = db.Column(JSONType, nullable=False)
    time_spent_seconds = db.Column(db.Integer)
    completed_at = db.Column(db.DateTime, default=utcnow)

    @property
    def percentage(self):
        return round(self.score / self.max_score * 100) if self.max_score else 0

    def to_dict(self):
        return {
            'id': str(self.id),
            'quiz_slug': self.quiz_slug,
            'score': self.score,
            'max_score': self.max_score,
            'percentage': self.percentage,
            'answers': self.answers,
            'time_spent_seconds': self.time_spent_seconds,
            'completed_at': isoformat(self.completed_at)
        }
