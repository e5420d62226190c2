from flask import Blueprint, request, jsonify
from axori_api import db
from axori_api.models.learning import (
    LearningProgress, LearningBookmark, LearningAchievement, QuizAttempt,
    LEARNING_CONTENT_TYPES, PROGRESS_STATUSES
)
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.glossary import (
    search_terms, get_term, get_related_terms, category_counts,
    GLOSSARY_CATEGORIES, INVESTOR_LEVELS
)
from axori_api.utils.helpers import utcnow
from axori_api.utils.validation import get_json_body, require_fields, validate_choice, parse_int

bp = Blueprint('learning_hub', __name__)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

@bp.route('/progress', methods=['GET'])
@require_auth
def list_progress():
    user = get_authenticated_user()
    query = LearningProgress.query.filter_by(user_id=user.id)
    if request.args.get('content_type'):
        query = query.filter_by(content_type=validate_choice(
            request.args['content_type'], LEARNING_CONTENT_TYPES, 'content_type'))
    progress = query.order_by(LearningProgress.last_accessed_at.desc()).all()
    return jsonify([p.to_dict() for p in progress]), 200


@bp.route('/progress/<content_type>/<slug>', methods=['GET'])
@require_auth
def get_progress(content_type, slug):
    user = get_authenticated_user()
    validate_choice(content_type, LEARNING_CONTENT_TYPES, 'content_type')
    progress = LearningProgress.query.filter_by(
        user_id=user.id, content_type=content_type, content_slug=slug
    ).first()
    return jsonify(progress.to_dict() if progress else None), 200


@bp.route('/progress', methods=['POST'])
@require_auth
def upsert_progress():
    """
    Record progress on a piece of content
    ---
    tags:
      - Learning Hub
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - content_type
              - content_slug
            properties:
              content_type:
                type: string
                enum: [term, article, path, lesson, quiz]
              content_slug:
                type: string
              status:
                type: string
                enum: [viewed, in_progress, completed]
              progress_percent:
                type: integer
              time_spent_seconds:
                type: integer
    responses:
      200:
        description: Progress saved
    """
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'content_type', 'content_slug')
    content_type = validate_choice(data['content_type'], LEARNING_CONTENT_TYPES, 'content_type')
    status = validate_choice(data.get('status', 'viewed'), PROGRESS_STATUSES, 'status')

    progress = LearningProgress.query.filter_by(
        user_id=user.id, content_type=content_type, content_slug=data['content_slug']
    ).first()
    if progress is None:
        progress = LearningProgress(user_id=user.id, content_type=content_type,
                                    content_slug=data['content_slug'], time_spent_seconds=0)
        db.session.add(progress)

    progress.status = status
    if 'progress_percent' in data:
        progress.progress_percent = parse_int(data['progress_percent'], 'progress_percent', minimum=0, maximum=100)
    if 'time_spent_seconds' in data:
        progress.time_spent_seconds = parse_int(data['time_spent_seconds'], 'time_spent_seconds', minimum=0)
    if status == 'completed':
        progress.progress_percent = 100
        progress.completed_at = progress.completed_at or utcnow()
    progress.last_accessed_at = utcnow()

    db.session.commit()
    return jsonify(progress.to_dict()), 200


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------

@bp.route('/bookmarks', methods=['GET'])
@require_auth
def list_bookmarks():
    user = get_authenticated_user()
    query = LearningBookmark.query.filter_by(user_id=user.id)
    if request.args.get('content_type'):
        query = query.filter_by(content_type=validate_choice(
            request.args['content_type'], LEARNING_CONTENT_TYPES, 'content_type'))
    bookmarks = query.order_by(LearningBookmark.created_at.desc()).all()
    return jsonify([b.to_dict() for b in bookmarks]), 200


@bp.route('/bookmarks', methods=['POST'])
@require_auth
def add_bookmark():
    """Bookmark content; bookmarking twice returns the existing one"""
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'content_type', 'content_slug')
    content_type = validate_choice(data['content_type'], LEARNING_CONTENT_TYPES, 'content_type')

    existing = LearningBookmark.query.filter_by(
        user_id=user.id, content_type=content_type, content_slug=data['content_slug']
    ).first()
    if existing:
        return jsonify(existing.to_dict()), 200

    bookmark = LearningBookmark(user_id=user.id, content_type=content_type,
                                content_slug=data['content_slug'], notes=data.get('notes'))
    db.session.add(bookmark)
    db.session.commit()
    return jsonify(bookmark.to_dict()), 201


@bp.route('/bookmarks/<content_type>/<slug>', methods=['DELETE'])
@require_auth
def remove_bookmark(content_type, slug):
    user = get_authenticated_user()
    bookmark = LearningBookmark.query.filter_by(
        user_id=user.id, content_type=content_type, content_slug=slug
    ).first()
    if not bookmark:
        return jsonify({'error': 'Bookmark not found'}), 404
    db.session.delete(bookmark)
    db.session.commit()
    return jsonify({'message': 'Bookmark removed'}), 200


# ---------------------------------------------------------------------------
# Achievements and quizzes
# ---------------------------------------------------------------------------

@bp.route('/achievements', methods=['GET'])
@require_auth
def list_achievements():
    user = get_authenticated_user()
    achievements = LearningAchievement.query.filter_by(user_id=user.id) \
        .order_by(LearningAchievement.unlocked_at.desc()).all()
    return jsonify([a.to_dict() for a in achievements]), 200


@bp.route('/achievements', methods=['POST'])
@require_auth
def unlock_achievement():
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'achievement_id')

    existing = LearningAchievement.query.filter_by(user_id=user.id, achievement_id=data['achievement_id']).first()
    if existing:
        return jsonify(existing.to_dict()), 200

    achievement = LearningAchievement(user_id=user.id, achievement_id=data['achievement_id'],
                                      achievement_metadata=data.get('metadata'))
    db.session.add(achievement)
    db.session.commit()
    return jsonify(achievement.to_dict()), 201


@bp.route('/quizzes/<slug>/attempts', methods=['GET'])
@require_auth
def list_quiz_attempts(slug):
    user = get_authenticated_user()
    attempts = QuizAttempt.query.filter_by(user_id=user.id, quiz_slug=slug) \
        .order_by(QuizAttempt.completed_at.desc()).all()
    return jsonify([a.to_dict() for a in attempts]), 200


@bp.route('/quizzes/<slug>/attempts', methods=['POST'])
@require_auth
def record_quiz_attempt(slug):
    user = get_authenticated_user()
    data = get_json_body()
    if data.get('score') is None or data.get('max_score') is None or data.get('answers') is None:
        return jsonify({'error': 'score, max_score and answers are required'}), 400

    max_score = parse_int(data['max_score'], 'max_score', minimum=1)
    attempt = QuizAttempt(
        user_id=user.id,
        quiz_slug=slug,
        score=parse_int(data['score'], 'score', minimum=0, maximum=max_score),
        max_score=max_score,
        answers=data['answers'],
        time_spent_seconds=parse_int(data.get('time_spent_seconds'), 'time_spent_seconds', minimum=0)
    )
    db.session.add(attempt)
    db.session.commit()
    return jsonify(attempt.to_dict()), 201


@bp.route('/stats', methods=['GET'])
@require_auth
def get_learning_stats():
    """Counters for the learning hub dashboard"""
    user = get_authenticated_user()
    progress = LearningProgress.query.filter_by(user_id=user.id)
    return jsonify({
        'terms_viewed': progress.filter_by(content_type='term').count(),
        'articles_read': progress.filter_by(content_type='article', status='completed').count(),
        'paths_completed': progress.filter_by(content_type='path', status='completed').count(),
        'paths_in_progress': progress.filter_by(content_type='path', status='in_progress').count(),
        'total_bookmarks': LearningBookmark.query.filter_by(user_id=user.id).count(),
        'achievements_unlocked': LearningAchievement.query.filter_by(user_id=user.id).count()
    }), 200


# ---------------------------------------------------------------------------
# Glossary
# ---------------------------------------------------------------------------

@bp.route('/glossary', methods=['GET'])
@require_auth
def list_glossary_terms():
    """
    Search the investing glossary
    ---
    tags:
      - Learning Hub
    parameters:
      - in: query
        name: category
        schema:
          type: string
      - in: query
        name: level
        schema:
          type: string
          enum: [beginner, intermediate, advanced]
      - in: query
        name: search
        schema:
          type: string
        description: Matches term, short definition and synonyms
      - in: query
        name: letter
        schema:
          type: string
    security:
      - Bearer: []
    responses:
      200:
        description: Matching terms, alphabetical
    """
    category = request.args.get('category')
    level = request.args.get('level')
    if category:
        validate_choice(category, GLOSSARY_CATEGORIES, 'category')
    if level:
        validate_choice(level, INVESTOR_LEVELS, 'level')
    terms = search_terms(category=category, level=level,
                         search=request.args.get('search'), letter=request.args.get('letter'))
    return jsonify({'terms': terms, 'total': len(terms)}), 200


@bp.route('/glossary/categories', methods=['GET'])
@require_auth
def list_glossary_categories():
    return jsonify(category_counts()), 200


@bp.route('/glossary/<slug>', methods=['GET'])
@require_auth
def get_glossary_term(slug):
    term = get_term(slug)
    if not term:
        return jsonify({'error': 'Term not found'}), 404
    return jsonify(dict(term, related_terms=get_related_terms(term))), 200
