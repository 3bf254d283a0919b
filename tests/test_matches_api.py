"""HTTP tests for match authoring, confirmation and share links."""
import json


def _register(client, username, email=None):
    res = client.post('/api/auth/register', json={
        'username': username,
        'email': email or f'{username}@test.com',
        'password': 'password123',
    })
    data = json.loads(res.data)
    return data['token'], data['user']['id']


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def _create_match(client, token, **payload):
    body = {'match_type': 'singles', 'sets': [[6, 2], [6, 3]]}
    body.update(payload)
    return client.post('/api/matches', json=body, headers=_auth(token))


def test_create_match_requires_auth(client):
    res = client.post('/api/matches', json={'match_type': 'singles'})
    assert res.status_code == 401


def test_create_and_get_match(client):
    token, user_id = _register(client, 'owner')
    _, opp_id = _register(client, 'rival')

    res = _create_match(client, token, opponent_ids=[opp_id], overall_feeling=4,
                        location='Center court', opponent1_name='Rival')
    assert res.status_code == 201
    match = json.loads(res.data)['match']
    assert match['status'] == 'draft'
    assert match['score'] == '6-2 6-3'
    assert match['viewer_team'] == 'A'
    assert match['result'] == 'win'
    assert [p['user_id'] for p in match['team_a']] == [user_id]
    assert [p['user_id'] for p in match['team_b']] == [opp_id]

    detail = client.get(f"/api/matches/{match['id']}", headers=_auth(token))
    assert detail.status_code == 200
    assert json.loads(detail.data)['match']['overall_feeling'] == 4


def test_create_rejects_illegal_set_with_per_set_errors(client):
    token, _ = _register(client, 'owner')
    res = _create_match(client, token, sets=[[6, 5], [9, 0]])
    assert res.status_code == 400
    data = json.loads(res.data)
    assert len(data['errors']) == 2


def test_feelings_must_be_between_one_and_five(client):
    token, _ = _register(client, 'owner')
    res = _create_match(client, token, physical_feeling=6)
    assert res.status_code == 400


def test_private_match_hidden_from_strangers(client):
    token, _ = _register(client, 'owner')
    other_token, _ = _register(client, 'stranger')
    match = json.loads(_create_match(client, token).data)['match']

    res = client.get(f"/api/matches/{match['id']}", headers=_auth(other_token))
    assert res.status_code == 403


def test_submit_and_confirm_flow_updates_ratings(client):
    token, user_id = _register(client, 'owner')
    opp_token, opp_id = _register(client, 'rival')
    match = json.loads(_create_match(client, token, opponent_ids=[opp_id]).data)['match']

    early = client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))
    assert early.status_code == 400

    submit = client.post(f"/api/matches/{match['id']}/submit", headers=_auth(token))
    assert submit.status_code == 200
    assert json.loads(submit.data)['match']['status'] == 'pending_confirmation'

    confirm = client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))
    assert confirm.status_code == 200
    data = json.loads(confirm.data)
    assert data['match']['status'] == 'confirmed'
    deltas = {c['user_id']: c['delta'] for c in data['rating_changes']}
    assert deltas == {user_id: 16.0, opp_id: -16.0}

    again = client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))
    assert again.status_code == 409

    me = json.loads(client.get('/api/auth/me', headers=_auth(opp_token)).data)['user']
    assert me['rating'] == 1184.0

    notifs = json.loads(client.get('/api/auth/notifications', headers=_auth(opp_token)).data)
    types = {n['notif_type'] for n in notifs['notifications']}
    assert {'match_invite', 'match_result'} <= types


def test_confirm_undecided_match_returns_validation_error(client):
    token, _ = _register(client, 'owner')
    match = json.loads(_create_match(
        client, token, sets=[[6, 2], [3, 6]], status='pending_confirmation',
    ).data)['match']

    res = client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))
    assert res.status_code == 400
    assert 'set 3 is missing' in json.loads(res.data)['error']


def test_edit_confirmed_match_is_rejected(client):
    token, _ = _register(client, 'owner')
    _, opp_id = _register(client, 'rival')
    match = json.loads(_create_match(
        client, token, opponent_ids=[opp_id], status='pending_confirmation',
    ).data)['match']
    client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))

    res = client.patch(f"/api/matches/{match['id']}", json={'sets': [[0, 6], [0, 6]]},
                       headers=_auth(token))
    assert res.status_code == 409
    detail = json.loads(client.get(f"/api/matches/{match['id']}", headers=_auth(token)).data)
    assert detail['match']['score'] == '6-2 6-3'


def test_visibility_toggle_on_confirmed_match(client):
    token, _ = _register(client, 'owner')
    _, opp_id = _register(client, 'rival')
    match = json.loads(_create_match(
        client, token, opponent_ids=[opp_id], status='pending_confirmation',
    ).data)['match']
    client.post(f"/api/matches/{match['id']}/confirm", headers=_auth(token))

    res = client.patch(f"/api/matches/{match['id']}", json={'is_public': True},
                       headers=_auth(token))
    assert res.status_code == 200
    assert json.loads(res.data)['match']['is_public'] is True


def test_join_by_share_link_and_preview(client):
    token, _ = _register(client, 'owner')
    joiner_token, joiner_id = _register(client, 'joiner')
    match = json.loads(_create_match(client, token, match_type='doubles', sets=[]).data)['match']
    code = match['share_code']

    preview = client.get(f'/api/matches/share/{code}')
    assert preview.status_code == 200
    preview_data = json.loads(preview.data)['match']
    assert preview_data['open_slot'] == ['A', 2]
    assert 'notes' not in preview_data

    first = client.post(f'/api/matches/join/{code}', headers=_auth(joiner_token))
    assert first.status_code == 201
    body = json.loads(first.data)
    assert body['joined'] is True
    assert body['participant']['team'] == 'A'
    assert body['match']['viewer_team'] == 'A'

    second = client.post(f'/api/matches/join/{code}', headers=_auth(joiner_token))
    assert second.status_code == 200
    assert json.loads(second.data)['joined'] is False
    assert json.loads(second.data)['participant']['user_id'] == joiner_id


def test_fifth_player_gets_conflict(client):
    token, _ = _register(client, 'owner')
    match = json.loads(_create_match(client, token, match_type='doubles', sets=[]).data)['match']
    for name in ('player2', 'player3', 'player4'):
        joiner_token, _ = _register(client, name)
        res = client.post(f"/api/matches/join/{match['share_code']}", headers=_auth(joiner_token))
        assert res.status_code == 201

    late_token, _ = _register(client, 'player5')
    res = client.post(f"/api/matches/join/{match['share_code']}", headers=_auth(late_token))
    assert res.status_code == 409


def test_cancel_by_owner_only(client):
    token, _ = _register(client, 'owner')
    opp_token, opp_id = _register(client, 'rival')
    match = json.loads(_create_match(client, token, opponent_ids=[opp_id]).data)['match']

    denied = client.post(f"/api/matches/{match['id']}/cancel", headers=_auth(opp_token))
    assert denied.status_code == 403
    ok = client.post(f"/api/matches/{match['id']}/cancel", headers=_auth(token))
    assert ok.status_code == 200
    assert json.loads(ok.data)['match']['status'] == 'cancelled'


def test_my_matches_lists_owned_and_joined(client):
    token, _ = _register(client, 'owner')
    opp_token, opp_id = _register(client, 'rival')
    _create_match(client, token, opponent_ids=[opp_id])
    _create_match(client, token)

    mine = json.loads(client.get('/api/matches/mine', headers=_auth(token)).data)
    assert len(mine['matches']) == 2
    theirs = json.loads(client.get('/api/matches/mine', headers=_auth(opp_token)).data)
    assert len(theirs['matches']) == 1
    assert theirs['matches'][0]['result'] == 'loss'
