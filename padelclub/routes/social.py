from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError
from padelclub.app import db
from padelclub.models import Follow, Notification, User
from padelclub.auth_utils import login_required, optional_current_user
from padelclub.routes.helpers import match_store, _emit_notification_update
from padelclub.services import player_stats

social_bp = Blueprint('social', __name__)

_MAX_PAGE_SIZE = 50


def _get_user_by_username(username):
    return User.query.filter_by(username=str(username or '').strip()).first()


def _follow_counts(user_id):
    followers = Follow.query.filter_by(followed_id=user_id).count()
    following = Follow.query.filter_by(follower_id=user_id).count()
    return followers, following


def _is_following(follower_id, followed_id):
    if follower_id is None:
        return False
    return Follow.query.filter_by(
        follower_id=follower_id, followed_id=followed_id,
    ).first() is not None


def _page_args():
    default_size = int(current_app.config.get('FEED_PAGE_SIZE', 20))
    try:
        page = max(1, int(request.args.get('page', 1)))
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(request.args.get('per_page', default_size))
    except (TypeError, ValueError):
        per_page = default_size
    per_page = min(max(1, per_page), _MAX_PAGE_SIZE)
    return page, per_page


# ── follows ───────────────────────────────────────────────────────────

@social_bp.route('/players/<username>/follow', methods=['POST'])
@login_required
def follow(username):
    user = request.current_user
    target = _get_user_by_username(username)
    if not target:
        return jsonify({'error': 'Player not found'}), 404
    if target.id == user.id:
        return jsonify({'error': 'You cannot follow yourself'}), 400

    if _is_following(user.id, target.id):
        return jsonify({'following': True, 'created': False})

    db.session.add(Follow(follower_id=user.id, followed_id=target.id))
    db.session.add(Notification(
        user_id=target.id, actor_id=user.id, notif_type='new_follower',
        content=f'{user.display_name or user.username} started following you.',
        reference_id=user.id,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against the same follow request.
        db.session.rollback()
        return jsonify({'following': True, 'created': False})
    _emit_notification_update(user_id=target.id, reason='new_follower')
    return jsonify({'following': True, 'created': True}), 201


@social_bp.route('/players/<username>/follow', methods=['DELETE'])
@login_required
def unfollow(username):
    target = _get_user_by_username(username)
    if not target:
        return jsonify({'error': 'Player not found'}), 404
    Follow.query.filter_by(
        follower_id=request.current_user.id, followed_id=target.id,
    ).delete(synchronize_session=False)
    db.session.commit()
    return jsonify({'following': False})


@social_bp.route('/players/<username>/followers', methods=['GET'])
def followers(username):
    target = _get_user_by_username(username)
    if not target:
        return jsonify({'error': 'Player not found'}), 404
    links = Follow.query.filter_by(followed_id=target.id).order_by(Follow.created_at.desc()).all()
    return jsonify({'players': [link.follower.to_public_dict() for link in links]})


@social_bp.route('/players/<username>/following', methods=['GET'])
def following(username):
    target = _get_user_by_username(username)
    if not target:
        return jsonify({'error': 'Player not found'}), 404
    links = Follow.query.filter_by(follower_id=target.id).order_by(Follow.created_at.desc()).all()
    return jsonify({'players': [link.followed.to_public_dict() for link in links]})


# ── profiles ──────────────────────────────────────────────────────────

@social_bp.route('/players/<username>', methods=['GET'])
def player_profile(username):
    target = _get_user_by_username(username)
    if not target:
        return jsonify({'error': 'Player not found'}), 404
    viewer = optional_current_user()
    viewer_id = viewer.id if viewer else None
    is_self = viewer_id == target.id
    if not target.is_public and not is_self:
        return jsonify({'error': 'This profile is private'}), 403

    store = match_store()
    follower_count, following_count = _follow_counts(target.id)
    confirmed = store.list_confirmed_matches_for_player(target.id)
    stats = player_stats.player_stats(confirmed, target.id)

    if is_self:
        recent = store.list_matches_for_user(target.id)
    else:
        recent = store.list_public_matches([target.id], limit=10)

    return jsonify({'player': dict(
        target.to_public_dict(),
        stats=stats,
        badges=player_stats.earned_badges(stats, follower_count),
        tier=player_stats.ranking_tier(target.rating),
        followers=follower_count,
        following=following_count,
        is_following=_is_following(viewer_id, target.id),
        recent_matches=[m.to_dict(viewer_id=target.id) for m in recent[:10]],
    )})


# ── feed and ranking ──────────────────────────────────────────────────

@social_bp.route('/feed', methods=['GET'])
@login_required
def feed():
    """Public matches of followed public players, newest first."""
    page, per_page = _page_args()
    followed_ids = [
        row.id for row in db.session.query(User.id).join(
            Follow, Follow.followed_id == User.id,
        ).filter(
            Follow.follower_id == request.current_user.id,
            User.is_public.is_(True),
        ).all()
    ]
    store = match_store()
    matches = store.list_public_matches(
        followed_ids, limit=per_page + 1, offset=(page - 1) * per_page,
    )
    owners = {
        u.id: u.to_public_dict()
        for u in User.query.filter(User.id.in_({m.owner_id for m in matches})).all()
    } if matches else {}

    items = []
    for match in matches[:per_page]:
        item = match.to_dict(viewer_id=match.owner_id)
        item.pop('notes', None)
        item['owner'] = owners.get(match.owner_id)
        items.append(item)
    return jsonify({
        'matches': items,
        'page': page,
        'per_page': per_page,
        'has_more': len(matches) > per_page,
    })


@social_bp.route('/ranking', methods=['GET'])
def ranking():
    try:
        limit = min(max(1, int(request.args.get('limit', 50))), 200)
    except (TypeError, ValueError):
        limit = 50
    players = User.query.filter(User.is_public.is_(True)).order_by(
        User.rating.desc(), User.id,
    ).limit(limit).all()
    return jsonify({'ranking': [
        dict(
            player.to_public_dict(),
            position=position,
            tier=player_stats.ranking_tier(player.rating),
        )
        for position, player in enumerate(players, start=1)
    ]})
