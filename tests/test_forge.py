"""
Forge: tickets, agent executions, token budget, decisions, registry, planning,
agent protocols and the daily briefing.
"""
from datetime import datetime, timedelta

import pytest

from axori_api import db
from axori_api.models.forge_budget import ForgeTokenBudget
from axori_api.models.forge_decision import ForgeDecision
from axori_api.models.forge_ticket import ForgeTicket
from axori_api.utils import helpers
from axori_api.utils.agent_protocols import suggest_protocol
from axori_api.utils.decision_matching import match_decisions, format_decisions_for_prompt
from axori_api.utils.helpers import utcnow


@pytest.fixture
def dev_headers(developer, auth_headers):
    return auth_headers(developer)


def create_ticket(client, headers, **fields):
    body = {'title': 'Add rent roll import'}
    body.update(fields)
    response = client.post('/api/forge/tickets/', json=body, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def create_execution(client, headers, ticket, protocol='sonnet_bug_fix'):
    return client.post('/api/forge/executions/', json={
        'ticket_id': ticket['id'], 'protocol': protocol, 'prompt': 'Fix it'
    }, headers=headers)


class TestForgeAccess:
    def test_regular_user_is_forbidden(self, client, owner, auth_headers):
        response = client.get('/api/forge/tickets/', headers=auth_headers(owner))
        assert response.status_code == 403
        assert response.get_json() == {'error': 'Forbidden - Requires forge:tickets:read access'}

    def test_viewer_reads_but_cannot_write(self, client, make_user, auth_headers):
        viewer = auth_headers(make_user(admin_roles=['viewer']))
        assert client.get('/api/forge/tickets/', headers=viewer).status_code == 200
        assert client.get('/api/forge/budget/today', headers=viewer).status_code == 200
        assert client.post('/api/forge/tickets/', json={'title': 'x'}, headers=viewer).status_code == 403
        assert client.get('/api/forge/executions/', headers=viewer).status_code == 403

    def test_requires_token(self, client):
        assert client.get('/api/forge/tickets/board').status_code == 401


class TestTickets:
    def test_identifiers_are_sequential(self, client, dev_headers):
        first = create_ticket(client, dev_headers)
        second = create_ticket(client, dev_headers, title='Second')
        assert first['identifier'] == 'FORGE-001'
        assert second['identifier'] == 'FORGE-002'
        assert first['status'] == 'backlog'

    def test_identifier_continues_after_gaps(self, client, dev_headers):
        db.session.add(ForgeTicket(identifier='FORGE-041', title='Imported', status='done'))
        db.session.add(ForgeTicket(identifier='AXO-900', title='Legacy', status='done'))
        db.session.commit()
        assert create_ticket(client, dev_headers)['identifier'] == 'FORGE-042'

    def test_create_requires_title(self, client, dev_headers):
        assert client.post('/api/forge/tickets/', json={}, headers=dev_headers).status_code == 400

    def test_status_timestamps(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        url = f"/api/forge/tickets/{ticket['id']}/status"

        started = client.patch(url, json={'status': 'in_progress'}, headers=dev_headers).get_json()
        assert started['started_at'] is not None
        assert started['completed_at'] is None

        client.patch(url, json={'status': 'in_review'}, headers=dev_headers)
        again = client.patch(url, json={'status': 'in_progress'}, headers=dev_headers).get_json()
        assert again['started_at'] == started['started_at']

        done = client.patch(url, json={'status': 'done', 'status_order': 3}, headers=dev_headers).get_json()
        assert done['completed_at'] is not None
        assert done['status_order'] == 3

    def test_invalid_status(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        response = client.patch(f"/api/forge/tickets/{ticket['id']}/status", json={'status': 'shipped'},
                                headers=dev_headers)
        assert response.status_code == 400

    def test_board_has_every_column(self, client, dev_headers):
        create_ticket(client, dev_headers)
        create_ticket(client, dev_headers, title='Blocked one', status='blocked')
        board = client.get('/api/forge/tickets/board', headers=dev_headers).get_json()
        assert [c['status'] for c in board['columns']] == [
            'backlog', 'design', 'planned', 'in_progress', 'in_review', 'testing', 'done', 'blocked'
        ]
        counts = {c['status']: c['count'] for c in board['columns']}
        assert counts['backlog'] == 1
        assert counts['blocked'] == 1
        assert board['total'] == 2

    def test_reorder(self, client, dev_headers):
        a = create_ticket(client, dev_headers, title='A')
        b = create_ticket(client, dev_headers, title='B')
        response = client.post('/api/forge/tickets/reorder', json={
            'status': 'planned', 'ticket_ids': [b['id'], a['id']]
        }, headers=dev_headers)
        assert response.status_code == 200
        tickets = response.get_json()['tickets']
        assert [(t['title'], t['status'], t['status_order']) for t in tickets] == [
            ('B', 'planned', 0), ('A', 'planned', 1)
        ]

    def test_reorder_rejects_unknown_ticket(self, client, dev_headers):
        response = client.post('/api/forge/tickets/reorder', json={
            'status': 'planned', 'ticket_ids': ['00000000-0000-0000-0000-000000000001']
        }, headers=dev_headers)
        assert response.status_code == 404
        response = client.post('/api/forge/tickets/reorder', json={'status': 'planned', 'ticket_ids': 'x'},
                               headers=dev_headers)
        assert response.status_code == 400

    def test_list_filters(self, client, dev_headers):
        create_ticket(client, dev_headers, title='Fix login', type='bug', priority='high')
        create_ticket(client, dev_headers, title='Docs pass', type='docs')
        bugs = client.get('/api/forge/tickets/?type=bug', headers=dev_headers).get_json()
        assert [t['title'] for t in bugs] == ['Fix login']
        found = client.get('/api/forge/tickets/?search=docs', headers=dev_headers).get_json()
        assert [t['title'] for t in found] == ['Docs pass']
        assert client.get('/api/forge/tickets/?prefix=NOPE', headers=dev_headers).status_code == 400

    def test_update(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        response = client.put(f"/api/forge/tickets/{ticket['id']}", json={
            'labels': ['api', 'import'], 'estimate': 5, 'status': 'planned'
        }, headers=dev_headers)
        body = response.get_json()
        assert body['labels'] == ['api', 'import']
        assert body['estimate'] == 5
        assert body['status'] == 'planned'
        assert client.put(f"/api/forge/tickets/{ticket['id']}", json={'title': ''},
                          headers=dev_headers).status_code == 400

    def test_phase_can_be_cleared(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers, phase='design')
        url = f"/api/forge/tickets/{ticket['id']}"
        assert client.put(url, json={'phase': None}, headers=dev_headers).get_json()['phase'] is None
        assert client.put(url, json={'phase': 'someday'}, headers=dev_headers).status_code == 400
        assert client.put(url, json={'priority': None}, headers=dev_headers).status_code == 400

    def test_assign_agent(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        url = f"/api/forge/tickets/{ticket['id']}/assign-agent"
        assert client.post(url, json={'agent': 'haiku_docs'}, headers=dev_headers) \
            .get_json()['assigned_agent'] == 'haiku_docs'
        assert client.post(url, json={'agent': 'gpt'}, headers=dev_headers).status_code == 400
        assert client.post(url, json={'agent': None}, headers=dev_headers).get_json()['assigned_agent'] is None

    def test_delete_detaches_children(self, client, dev_headers):
        parent = create_ticket(client, dev_headers, title='Epic')
        child = create_ticket(client, dev_headers, title='Child', parent_id=parent['id'])
        response = client.delete(f"/api/forge/tickets/{parent['id']}", headers=dev_headers)
        assert response.get_json() == {'message': 'Ticket FORGE-001 deleted'}
        assert client.get(f"/api/forge/tickets/{child['id']}", headers=dev_headers).get_json()['parent_id'] is None

    def test_subtasks_and_comments(self, client, developer, dev_headers):
        ticket = create_ticket(client, dev_headers)
        base = f"/api/forge/tickets/{ticket['id']}"

        first = client.post(f'{base}/subtasks', json={'title': 'Parse CSV'}, headers=dev_headers).get_json()
        second = client.post(f'{base}/subtasks', json={'title': 'Save rows'}, headers=dev_headers).get_json()
        assert (first['sort_order'], second['sort_order']) == (0, 1)

        done = client.patch(f"{base}/subtasks/{first['id']}", json={'completed': True}, headers=dev_headers)
        assert done.get_json()['completed_at'] is not None
        undone = client.patch(f"{base}/subtasks/{first['id']}", json={'completed': False}, headers=dev_headers)
        assert undone.get_json()['completed_at'] is None

        comment = client.post(f'{base}/comments', json={'content': 'Looks good'}, headers=dev_headers).get_json()
        assert comment['author_type'] == 'user'
        assert comment['author_name'] == developer.display_name
        assert client.post(f'{base}/comments', json={}, headers=dev_headers).status_code == 400

        detail = client.get(base, headers=dev_headers).get_json()
        assert [s['title'] for s in detail['subtasks']] == ['Parse CSV', 'Save rows']
        assert [c['content'] for c in detail['comments']] == ['Looks good']

        assert client.delete(f"{base}/subtasks/{second['id']}", headers=dev_headers).status_code == 200
        assert len(client.get(base, headers=dev_headers).get_json()['subtasks']) == 1

    def test_subtask_of_other_ticket(self, client, dev_headers):
        one = create_ticket(client, dev_headers)
        two = create_ticket(client, dev_headers)
        subtask = client.post(f"/api/forge/tickets/{one['id']}/subtasks", json={'title': 'x'},
                              headers=dev_headers).get_json()
        response = client.patch(f"/api/forge/tickets/{two['id']}/subtasks/{subtask['id']}",
                                json={'completed': True}, headers=dev_headers)
        assert response.status_code == 404


class TestExecutions:
    def test_create_assigns_agent(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        response = create_execution(client, dev_headers, ticket)
        assert response.status_code == 201
        execution = response.get_json()
        assert execution['status'] == 'pending'

        updated = client.get(f"/api/forge/tickets/{ticket['id']}", headers=dev_headers).get_json()
        assert updated['assigned_agent'] == 'sonnet_bug_fix'
        assert updated['agent_session_id'] == execution['id']
        assert updated['last_execution_id'] == execution['id']

    def test_unknown_ticket(self, client, dev_headers):
        response = client.post('/api/forge/executions/', json={
            'ticket_id': '00000000-0000-0000-0000-000000000001', 'protocol': 'haiku_docs', 'prompt': 'x'
        }, headers=dev_headers)
        assert response.status_code == 404

    def test_one_running_execution_per_ticket(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        execution = create_execution(client, dev_headers, ticket).get_json()
        client.put(f"/api/forge/executions/{execution['id']}", json={'status': 'running'}, headers=dev_headers)

        response = create_execution(client, dev_headers, ticket)
        assert response.status_code == 409
        assert response.get_json()['execution_id'] == execution['id']

    def test_budget_refusal(self, client, dev_headers):
        client.put('/api/forge/budget/today', json={'daily_limit_tokens': 10000}, headers=dev_headers)
        ticket = create_ticket(client, dev_headers)
        response = create_execution(client, dev_headers, ticket, protocol='opus_full_feature')
        assert response.status_code == 429
        assert response.get_json() == {
            'error': 'Daily token budget exceeded',
            'remaining_tokens': 10000,
            'remaining_cents': 500,
            'estimated_tokens': 60000
        }
        assert create_execution(client, dev_headers, ticket, protocol='haiku_quick_edit').status_code == 201

    def test_worker_report_lifecycle(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        execution = create_execution(client, dev_headers, ticket).get_json()
        url = f"/api/forge/executions/{execution['id']}"

        running = client.put(url, json={'status': 'running', 'checkpoint_step': 2}, headers=dev_headers).get_json()
        assert running['started_at'] is not None
        assert running['checkpoint_step'] == 2

        finished = client.put(url, json={'status': 'completed', 'pr_url': 'https://github.com/acme/app/pull/7',
                                         'files_changed': ['api/rent.py']}, headers=dev_headers).get_json()
        assert finished['completed_at'] is not None
        assert finished['files_changed'] == ['api/rent.py']

        released = client.get(f"/api/forge/tickets/{ticket['id']}", headers=dev_headers).get_json()
        assert released['assigned_agent'] is None
        assert released['agent_session_id'] is None

    def test_pause_resume_cancel(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        execution = create_execution(client, dev_headers, ticket).get_json()
        url = f"/api/forge/executions/{execution['id']}"

        assert client.post(f'{url}/pause', headers=dev_headers).status_code == 400
        client.put(url, json={'status': 'running', 'execution_log': 'step 1'}, headers=dev_headers)
        assert client.post(f'{url}/pause', headers=dev_headers).get_json()['status'] == 'paused'
        assert client.post(f'{url}/pause', headers=dev_headers).status_code == 400
        assert client.post(f'{url}/resume', headers=dev_headers).get_json()['status'] == 'running'
        assert client.post(f'{url}/resume', headers=dev_headers).status_code == 400

        cancelled = client.post(f'{url}/cancel', headers=dev_headers).get_json()
        assert cancelled['status'] == 'failed'
        assert cancelled['execution_log'] == 'step 1\n[CANCELLED BY USER]'
        assert client.post(f'{url}/cancel', headers=dev_headers).status_code == 400

    def test_log_tokens_updates_budget(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        execution = create_execution(client, dev_headers, ticket).get_json()
        url = f"/api/forge/executions/{execution['id']}/log-tokens"

        client.post(url, json={'model': 'claude-sonnet', 'input_tokens': 1000, 'output_tokens': 500,
                               'cost_cents': 3}, headers=dev_headers)
        response = client.post(url, json={'model': 'claude-haiku', 'input_tokens': 200, 'output_tokens': 100,
                                          'cost_cents': 1}, headers=dev_headers)
        assert response.status_code == 201
        body = response.get_json()
        assert body['execution']['tokens_used'] == 1800
        assert body['execution']['cost_cents'] == 4
        assert body['budget'] == {'used_tokens': 1800, 'used_cents': 4}

        detail = client.get(f"/api/forge/executions/{execution['id']}", headers=dev_headers).get_json()
        assert [u['model'] for u in detail['token_usage']] == ['claude-sonnet', 'claude-haiku']
        assert detail['ticket']['identifier'] == ticket['identifier']

        assert client.post(url, json={'input_tokens': 1}, headers=dev_headers).status_code == 400

    def test_list_filters(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        other = create_ticket(client, dev_headers)
        create_execution(client, dev_headers, ticket)
        create_execution(client, dev_headers, other)
        listed = client.get(f"/api/forge/executions/?ticket_id={ticket['id']}", headers=dev_headers).get_json()
        assert len(listed) == 1
        assert listed[0]['ticket']['id'] == ticket['id']
        assert len(client.get('/api/forge/executions/?limit=1', headers=dev_headers).get_json()) == 1


class TestBudget:
    def test_today_is_created_with_defaults(self, client, dev_headers):
        body = client.get('/api/forge/budget/today', headers=dev_headers).get_json()
        assert body['daily_limit_tokens'] == 500000
        assert body['daily_limit_cents'] == 500
        assert body['remaining_tokens'] == 500000
        assert body['token_percent_used'] == 0
        assert ForgeTokenBudget.query.count() == 1

    def test_today_is_the_utc_day(self, client, dev_headers, monkeypatch):
        monkeypatch.setattr(helpers, 'utcnow', lambda: datetime(2026, 3, 1, 23, 30))
        body = client.get('/api/forge/budget/today', headers=dev_headers).get_json()
        assert body['date'] == '2026-03-01'

    def test_update_limits(self, client, dev_headers):
        body = client.put('/api/forge/budget/today', json={'daily_limit_cents': 1000},
                          headers=dev_headers).get_json()
        assert body['daily_limit_cents'] == 1000
        assert client.put('/api/forge/budget/today', json={'daily_limit_tokens': -1},
                          headers=dev_headers).status_code == 400

    def test_usage_history_and_stats(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        execution = create_execution(client, dev_headers, ticket).get_json()
        client.post(f"/api/forge/executions/{execution['id']}/log-tokens", json={
            'model': 'claude-sonnet', 'input_tokens': 4000, 'output_tokens': 1000, 'cost_cents': 10
        }, headers=dev_headers)
        client.put(f"/api/forge/executions/{execution['id']}", json={'status': 'completed'}, headers=dev_headers)

        history = client.get('/api/forge/budget/history?days=7', headers=dev_headers).get_json()
        assert history['totals'] == {'tokens': 5000, 'cents': 10}
        assert history['averages']['tokens_per_day'] == 5000

        usage = client.get('/api/forge/budget/usage', headers=dev_headers).get_json()
        assert usage['by_model'] == [{'model': 'claude-sonnet', 'tokens': 5000, 'cents': 10, 'calls': 1}]
        assert usage['by_protocol'] == [
            {'protocol': 'sonnet_bug_fix', 'tokens': 5000, 'cents': 10, 'executions': 1}
        ]
        assert usage['daily'][0]['tokens'] == 5000

        recent = client.get('/api/forge/budget/recent?limit=5', headers=dev_headers).get_json()
        assert len(recent) == 1

        stats = client.get('/api/forge/budget/stats', headers=dev_headers).get_json()
        assert stats['month'] == {'tokens': 5000, 'cents': 10}
        assert stats['executions']['completed'] == 1
        assert stats['executions']['success_rate'] == 100.0


class TestDecisions:
    def create(self, client, headers, **fields):
        body = {'decision': 'Use pytest fixtures for test data', 'category': 'testing'}
        body.update(fields)
        response = client.post('/api/forge/decisions/', json=body, headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    def test_identifiers_and_toggle(self, client, dev_headers):
        first = self.create(client, dev_headers)
        second = self.create(client, dev_headers, category='architecture', decision='Blueprints per resource')
        assert (first['identifier'], second['identifier']) == ('DEC-001', 'DEC-002')
        assert first['active'] is True

        toggled = client.patch(f"/api/forge/decisions/{first['id']}/toggle", headers=dev_headers).get_json()
        assert toggled['active'] is False
        active = client.get('/api/forge/decisions/?active=true', headers=dev_headers).get_json()
        assert [d['identifier'] for d in active] == ['DEC-002']

    def test_compliance_rate_is_bounded(self, client, dev_headers):
        response = client.post('/api/forge/decisions/', json={
            'decision': 'x', 'category': 'process', 'compliance_rate': 120
        }, headers=dev_headers)
        assert response.status_code == 400
        assert response.get_json()['details'] == {'compliance_rate': 'Must be at most 100'}

    def test_search_matches_scope(self, client, dev_headers):
        self.create(client, dev_headers, scope=['auth', 'api'])
        self.create(client, dev_headers, decision='Keep migrations reversible', category='process')
        found = client.get('/api/forge/decisions/?search=auth', headers=dev_headers).get_json()
        assert [d['identifier'] for d in found] == ['DEC-001']

    def test_delete_clears_supersedes(self, client, dev_headers):
        old = self.create(client, dev_headers)
        new = self.create(client, dev_headers, supersedes=old['id'])
        response = client.delete(f"/api/forge/decisions/{old['id']}", headers=dev_headers)
        assert response.get_json() == {'message': 'Decision DEC-001 deleted'}
        assert client.get(f"/api/forge/decisions/{new['id']}", headers=dev_headers).get_json()['supersedes'] is None

    def test_match_and_prompt_routes(self, client, dev_headers):
        ticket = create_ticket(client, dev_headers)
        self.create(client, dev_headers, context='Shared fixtures live in conftest.py')

        matched = client.get(f"/api/forge/decisions/match?ticket_id={ticket['id']}", headers=dev_headers)
        assert [d['identifier'] for d in matched.get_json()['decisions']] == ['DEC-001']

        prompt = client.get(f"/api/forge/decisions/prompt?ticket_id={ticket['id']}", headers=dev_headers).get_json()
        assert prompt['decision_count'] == 1
        assert prompt['prompt'].startswith('## Decisions to Follow')
        assert '**DEC-001** (testing)' in prompt['prompt']
        assert 'Context: Shared fixtures live in conftest.py' in prompt['prompt']

        assert client.get('/api/forge/decisions/match', headers=dev_headers).status_code == 400


class TestDecisionMatching:
    def add_decisions(self, scopes):
        for number, scope in enumerate(scopes, start=1):
            db.session.add(ForgeDecision(identifier=f'DEC-{number:03d}', decision=f'Decision {number}',
                                         category='architecture', scope=scope, active=True))
        db.session.commit()

    def test_small_sets_are_returned_whole(self, app):
        self.add_decisions([['auth'], ['billing'], []])
        ticket = ForgeTicket(identifier='FORGE-001', title='Unrelated work', status='backlog')
        assert len(match_decisions(ticket)) == 3

    def test_large_sets_rank_by_scope_overlap(self, app):
        self.add_decisions([['auth'], ['billing'], ['auth', 'token'], ['ui'], ['docs'], ['deploy']])
        ticket = ForgeTicket(identifier='FORGE-001', title='Refresh auth token on expiry', status='backlog',
                             labels=['backend'], type='bug')
        assert [d.identifier for d in match_decisions(ticket)] == ['DEC-003', 'DEC-001']

    def test_large_sets_without_overlap_fall_back(self, app):
        self.add_decisions([['a'], ['b'], ['c'], ['d'], ['e'], ['f']])
        ticket = ForgeTicket(identifier='FORGE-001', title='Something else', status='backlog')
        assert len(match_decisions(ticket)) == 5

    def test_inactive_decisions_are_ignored(self, app):
        self.add_decisions([['auth']])
        ForgeDecision.query.first().active = False
        db.session.commit()
        ticket = ForgeTicket(identifier='FORGE-001', title='Auth', status='backlog')
        assert match_decisions(ticket) == []

    def test_empty_prompt(self):
        assert format_decisions_for_prompt([]) == ''


class TestRegistry:
    def create(self, client, headers, **fields):
        body = {'type': 'component', 'name': 'PropertyCard', 'file_path': 'src/components/PropertyCard.tsx'}
        body.update(fields)
        return client.post('/api/forge/registry/', json=body, headers=headers)

    def test_create_and_filter(self, client, dev_headers):
        assert self.create(client, dev_headers, tags='ui, cards').get_json()['tags'] == ['ui', 'cards']
        self.create(client, dev_headers, type='hook', name='usePortfolio', file_path='src/hooks/usePortfolio.ts')
        hooks = client.get('/api/forge/registry/?type=hook', headers=dev_headers).get_json()
        assert [i['name'] for i in hooks] == ['usePortfolio']
        found = client.get('/api/forge/registry/?search=components', headers=dev_headers).get_json()
        assert [i['name'] for i in found] == ['PropertyCard']

    def test_duplicate_name_per_type(self, client, dev_headers):
        assert self.create(client, dev_headers).status_code == 201
        assert self.create(client, dev_headers).status_code == 409

    def test_deprecate_with_replacement(self, client, dev_headers):
        old = self.create(client, dev_headers).get_json()
        new = self.create(client, dev_headers, name='PropertyTile').get_json()
        url = f"/api/forge/registry/{old['id']}/deprecate"

        assert client.post(url, json={'deprecated_by': old['id']}, headers=dev_headers).status_code == 400
        assert client.post(url, json={'deprecated_by': '00000000-0000-0000-0000-000000000001'},
                           headers=dev_headers).status_code == 404

        body = client.post(url, json={'deprecated_by': new['id'], 'notes': 'Use PropertyTile'},
                           headers=dev_headers).get_json()
        assert body['status'] == 'deprecated'
        assert body['deprecated_by'] == new['id']
        assert body['deprecation_notes'] == 'Use PropertyTile'

        client.delete(f"/api/forge/registry/{new['id']}", headers=dev_headers)
        assert client.get(f"/api/forge/registry/{old['id']}", headers=dev_headers).get_json()['deprecated_by'] is None

    def test_viewer_has_no_registry_access(self, client, make_user, auth_headers):
        viewer = auth_headers(make_user(admin_roles=['viewer']))
        assert client.get('/api/forge/registry/', headers=viewer).status_code == 403


class TestPlanning:
    def test_milestone_progress(self, client, dev_headers):
        milestone = client.post('/api/forge/milestones/', json={'name': 'Beta', 'target_date': '2026-12-01'},
                                headers=dev_headers).get_json()
        assert milestone['status'] == 'active'
        for status in ('done', 'done', 'in_progress'):
            create_ticket(client, dev_headers, milestone_id=milestone['id'], status=status)

        body = client.put(f"/api/forge/milestones/{milestone['id']}/progress", headers=dev_headers).get_json()
        assert body['progress_percent'] == 67
        assert body['ticket_count'] == 3
        assert body['done_count'] == 2

        detail = client.get(f"/api/forge/milestones/{milestone['id']}", headers=dev_headers).get_json()
        assert detail['ticket_breakdown']['done'] == 2
        assert detail['ticket_breakdown']['backlog'] == 0

    def test_empty_milestone_progress(self, client, dev_headers):
        milestone = client.post('/api/forge/milestones/', json={'name': 'Empty'}, headers=dev_headers).get_json()
        body = client.put(f"/api/forge/milestones/{milestone['id']}/progress", headers=dev_headers).get_json()
        assert body['progress_percent'] == 0

    def test_project_belongs_to_milestone(self, client, dev_headers):
        milestone = client.post('/api/forge/milestones/', json={'name': 'Beta'}, headers=dev_headers).get_json()
        response = client.post('/api/forge/projects/', json={
            'name': 'Importer', 'milestone_id': '00000000-0000-0000-0000-000000000001'
        }, headers=dev_headers)
        assert response.status_code == 404

        project = client.post('/api/forge/projects/', json={'name': 'Importer', 'milestone_id': milestone['id']},
                              headers=dev_headers).get_json()
        create_ticket(client, dev_headers, project_id=project['id'], status='done')

        detail = client.get(f"/api/forge/projects/{project['id']}", headers=dev_headers).get_json()
        assert detail['ticket_count'] == 1
        assert detail['done_count'] == 1
        assert detail['tickets'][0]['status'] == 'done'

        listed = client.get(f"/api/forge/projects/?milestone_id={milestone['id']}", headers=dev_headers).get_json()
        assert [p['name'] for p in listed] == ['Importer']
        milestones = client.get('/api/forge/milestones/', headers=dev_headers).get_json()
        assert milestones[0]['project_count'] == 1

    def test_delete_milestone_detaches(self, client, dev_headers):
        milestone = client.post('/api/forge/milestones/', json={'name': 'Beta'}, headers=dev_headers).get_json()
        ticket = create_ticket(client, dev_headers, milestone_id=milestone['id'])
        project = client.post('/api/forge/projects/', json={'name': 'P', 'milestone_id': milestone['id']},
                              headers=dev_headers).get_json()

        assert client.delete(f"/api/forge/milestones/{milestone['id']}", headers=dev_headers).status_code == 200
        assert client.get(f"/api/forge/tickets/{ticket['id']}", headers=dev_headers).get_json()['milestone_id'] is None
        assert client.get(f"/api/forge/projects/{project['id']}",
                          headers=dev_headers).get_json()['milestone_id'] is None

    def test_delete_project_detaches_tickets(self, client, dev_headers):
        project = client.post('/api/forge/projects/', json={'name': 'P'}, headers=dev_headers).get_json()
        ticket = create_ticket(client, dev_headers, project_id=project['id'])
        assert client.delete(f"/api/forge/projects/{project['id']}", headers=dev_headers).status_code == 200
        assert client.get(f"/api/forge/tickets/{ticket['id']}", headers=dev_headers).get_json()['project_id'] is None

    def test_project_belongs_to_feature(self, client, dev_headers):
        feature = client.post('/api/forge/features/', json={'name': 'Rent roll'}, headers=dev_headers).get_json()
        response = client.post('/api/forge/projects/', json={
            'name': 'Importer', 'feature_id': '00000000-0000-0000-0000-000000000001'
        }, headers=dev_headers)
        assert response.status_code == 404

        client.post('/api/forge/projects/', json={'name': 'Importer', 'feature_id': feature['id']},
                    headers=dev_headers)
        client.post('/api/forge/projects/', json={'name': 'Other'}, headers=dev_headers)
        listed = client.get(f"/api/forge/projects/?feature_id={feature['id']}", headers=dev_headers).get_json()
        assert [p['name'] for p in listed] == ['Importer']
        assert listed[0]['feature_id'] == feature['id']


class TestFoundriesAndFeatures:
    def create_foundry(self, client, headers, **fields):
        body = {'name': 'Portfolio'}
        body.update(fields)
        response = client.post('/api/forge/foundries/', json=body, headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    def test_feature_identifiers_are_sequential(self, client, dev_headers):
        first = client.post('/api/forge/features/', json={'name': 'Rent roll'}, headers=dev_headers).get_json()
        second = client.post('/api/forge/features/', json={'name': 'Tax docs'}, headers=dev_headers).get_json()
        assert first['identifier'] == 'FEAT-001'
        assert second['identifier'] == 'FEAT-002'
        assert first['status'] == 'active'

    def test_feature_validation(self, client, dev_headers):
        assert client.post('/api/forge/features/', json={}, headers=dev_headers).status_code == 400
        response = client.post('/api/forge/features/', json={'name': 'X', 'status': 'retired'}, headers=dev_headers)
        assert response.status_code == 400
        assert 'status' in response.get_json()['details']
        response = client.post('/api/forge/features/', json={
            'name': 'X', 'foundry_id': '00000000-0000-0000-0000-000000000001'
        }, headers=dev_headers)
        assert response.status_code == 404

    def test_foundry_lists_its_features(self, client, dev_headers):
        foundry = self.create_foundry(client, dev_headers, sort_order=1)
        self.create_foundry(client, dev_headers, name='Learning', sort_order=2)
        client.post('/api/forge/features/', json={'name': 'Taxes', 'foundry_id': foundry['id'], 'sort_order': 2},
                    headers=dev_headers)
        client.post('/api/forge/features/', json={'name': 'Loans', 'foundry_id': foundry['id'], 'sort_order': 1},
                    headers=dev_headers)

        foundries = client.get('/api/forge/foundries/', headers=dev_headers).get_json()
        assert [f['name'] for f in foundries] == ['Portfolio', 'Learning']
        assert [f['name'] for f in foundries[0]['features']] == ['Loans', 'Taxes']
        assert foundries[1]['features'] == []

    def test_feature_filters(self, client, dev_headers):
        foundry = self.create_foundry(client, dev_headers)
        client.post('/api/forge/features/', json={'name': 'Rent roll', 'foundry_id': foundry['id']},
                    headers=dev_headers)
        client.post('/api/forge/features/', json={'name': 'Dark mode', 'status': 'planned'}, headers=dev_headers)

        def names(query):
            return [f['name'] for f in client.get(f'/api/forge/features/?{query}', headers=dev_headers).get_json()]

        assert names(f"foundry_id={foundry['id']}") == ['Rent roll']
        assert names('status=planned') == ['Dark mode']
        assert names('search=rent') == ['Rent roll']

    def test_feature_detail_has_foundry_and_projects(self, client, dev_headers):
        foundry = self.create_foundry(client, dev_headers)
        feature = client.post('/api/forge/features/', json={'name': 'Rent roll', 'foundry_id': foundry['id']},
                              headers=dev_headers).get_json()
        client.post('/api/forge/projects/', json={'name': 'Importer', 'feature_id': feature['id']},
                    headers=dev_headers)

        detail = client.get(f"/api/forge/features/{feature['id']}", headers=dev_headers).get_json()
        assert detail['foundry']['name'] == 'Portfolio'
        assert [p['name'] for p in detail['projects']] == ['Importer']

    def test_foundry_with_features_cannot_be_deleted(self, client, dev_headers):
        foundry = self.create_foundry(client, dev_headers)
        feature = client.post('/api/forge/features/', json={'name': 'Rent roll', 'foundry_id': foundry['id']},
                              headers=dev_headers).get_json()

        response = client.delete(f"/api/forge/foundries/{foundry['id']}", headers=dev_headers)
        assert response.status_code == 400
        assert response.get_json() == {
            'error': 'Cannot delete foundry with existing features. Delete or reassign features first.'
        }

        assert client.delete(f"/api/forge/features/{feature['id']}", headers=dev_headers).get_json() == {
            'message': 'Feature FEAT-001 deleted'
        }
        assert client.delete(f"/api/forge/foundries/{foundry['id']}", headers=dev_headers).status_code == 200
        assert client.get(f"/api/forge/foundries/{foundry['id']}", headers=dev_headers).status_code == 404

    def test_feature_with_projects_cannot_be_deleted(self, client, dev_headers):
        feature = client.post('/api/forge/features/', json={'name': 'Rent roll'}, headers=dev_headers).get_json()
        client.post('/api/forge/projects/', json={'name': 'Importer', 'feature_id': feature['id']},
                    headers=dev_headers)
        response = client.delete(f"/api/forge/features/{feature['id']}", headers=dev_headers)
        assert response.status_code == 400
        assert response.get_json()['error'].startswith('Cannot delete feature with existing projects')

    def test_update_rejects_empty_name(self, client, dev_headers):
        foundry = self.create_foundry(client, dev_headers)
        url = f"/api/forge/foundries/{foundry['id']}"
        assert client.put(url, json={'icon': 'building'}, headers=dev_headers).get_json()['icon'] == 'building'
        assert client.put(url, json={'name': ''}, headers=dev_headers).status_code == 400

    def test_viewer_reads_but_cannot_write(self, client, make_user, auth_headers):
        viewer = auth_headers(make_user(admin_roles=['viewer']))
        assert client.get('/api/forge/foundries/', headers=viewer).status_code == 200
        assert client.post('/api/forge/features/', json={'name': 'X'}, headers=viewer).status_code == 403


class TestAgentProtocols:
    def test_list_protocols(self, client, dev_headers):
        protocols = client.get('/api/forge/agents/protocols', headers=dev_headers).get_json()
        assert len(protocols) == 8
        assert [p['id'] for p in protocols if p['requires_approval']] == ['opus_architecture']

    def test_get_protocol(self, client, dev_headers):
        body = client.get('/api/forge/agents/protocols/haiku_docs', headers=dev_headers).get_json()
        assert body['name'] == 'Haiku: Documentation'
        assert body['estimated_tokens'] == {'min': 3000, 'max': 8000}
        assert body['estimated_cost_cents'] == {'min': 1, 'max': 5}
        response = client.get('/api/forge/agents/protocols/gpt_everything', headers=dev_headers)
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Protocol not found'}

    @pytest.mark.parametrize('ticket_type, estimate, labels, expected', [
        ('bug', 8, ['architecture'], 'sonnet_bug_fix'),
        ('docs', None, None, 'haiku_docs'),
        ('chore', 1, None, 'haiku_quick_edit'),
        ('chore', 3, None, 'sonnet_implementation'),
        ('feature', 2, ['architecture'], 'opus_architecture'),
        ('feature', 5, [], 'opus_full_feature'),
        ('refactor', None, None, 'sonnet_implementation'),
    ])
    def test_suggest_rules(self, ticket_type, estimate, labels, expected):
        assert suggest_protocol(ticket_type, estimate, labels) == expected

    def test_suggest_route(self, client, dev_headers):
        body = client.post('/api/forge/agents/suggest', json={'type': 'feature', 'estimate': 8},
                           headers=dev_headers).get_json()
        assert body['protocol_id'] == 'opus_full_feature'
        assert body['protocol']['model'] == 'claude-opus-4-5-20251101'
        assert body['reason'] == "High-complexity features (5+ points) require Opus's thorough approach"

    def test_suggest_validation(self, client, dev_headers):
        url = '/api/forge/agents/suggest'
        assert client.post(url, json={}, headers=dev_headers).status_code == 400
        assert client.post(url, json={'type': 'bug', 'estimate': 'big'}, headers=dev_headers).status_code == 400
        assert client.post(url, json={'type': 'bug', 'labels': 'x'}, headers=dev_headers).status_code == 200
        assert client.post(url, json={'type': 'bug', 'labels': [1]}, headers=dev_headers).status_code == 400

    def test_viewer_has_no_agent_access(self, client, make_user, auth_headers):
        viewer = auth_headers(make_user(admin_roles=['viewer']))
        assert client.get('/api/forge/agents/protocols', headers=viewer).status_code == 403


class TestBriefing:
    def test_sections(self, client, dev_headers):
        done = create_ticket(client, dev_headers, title='Shipped', status='done')
        db.session.add(ForgeTicket(identifier='FORGE-090', title='Old', status='done',
                                   completed_at=utcnow() - timedelta(hours=48)))
        db.session.commit()
        review = create_ticket(client, dev_headers, title='Review me', status='in_review',
                               pr_url='https://github.com/axori/app/pull/7', pr_number=7)
        create_ticket(client, dev_headers, title='No PR', status='in_review')
        blocked = create_ticket(client, dev_headers, title='Stuck', status='blocked')
        high = create_ticket(client, dev_headers, title='High', status='planned', priority='high')
        critical = create_ticket(client, dev_headers, title='Critical', status='in_progress', priority='critical')
        create_ticket(client, dev_headers, title='Low', status='in_progress', priority='low')
        create_execution(client, dev_headers, blocked)

        body = client.get('/api/forge/briefing/', headers=dev_headers).get_json()
        overnight = body['overnight']
        assert [t['id'] for t in overnight['completed_tickets']] == [done['id']]
        assert [t['pr_url'] for t in overnight['prs_ready']] == [review['pr_url']]
        assert overnight['needs_attention'] == [{
            'id': blocked['id'], 'identifier': blocked['identifier'], 'title': 'Stuck',
            'status': 'blocked', 'priority': 'medium', 'reason': 'Blocked'
        }]
        assert [t['id'] for t in body['todays_focus']['tickets']] == [critical['id'], high['id']]
        assert body['todays_focus']['blocked_count'] == 1
        assert body['recent_executions'][0]['ticket_id'] == blocked['id']
        assert body['recent_executions'][0]['status'] == 'pending'

    def test_greeting_and_budget(self, client, dev_headers):
        body = client.get('/api/forge/briefing/', headers=dev_headers).get_json()
        hour = body['greeting']['hour']
        expected = 'morning' if hour < 12 else 'afternoon' if hour < 18 else 'evening'
        assert body['greeting']['time_of_day'] == expected
        assert body['token_budget'] == {
            'used_tokens': 0, 'limit_tokens': 500000, 'used_cents': 0, 'limit_cents': 500, 'percent_used': 0
        }
        assert ForgeTokenBudget.query.count() == 1

    def test_viewer_can_read(self, client, make_user, auth_headers):
        viewer = auth_headers(make_user(admin_roles=['viewer']))
        assert client.get('/api/forge/briefing/', headers=viewer).status_code == 200
