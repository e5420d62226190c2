"""Agent protocol catalog and the rules for picking one for a ticket"""

OPUS_MODEL = 'claude-opus-4-5-20251101'
SONNET_MODEL = 'claude-sonnet-4-5-20250929'
HAIKU_MODEL = 'claude-haiku-4-5-20251001'

PROTOCOLS = {
    'opus_full_feature': {
        'name': 'Opus: Full Feature',
        'description': 'Complete feature implementation including planning, code, and tests',
        'model': OPUS_MODEL,
        'estimated_tokens': (30000, 60000),
        'estimated_cost_cents': (100, 300),
        'best_for': ['Complete features', 'Complex implementations', 'Architecture changes'],
        'requires_approval': False,
    },
    'opus_architecture': {
        'name': 'Opus: Architecture',
        'description': 'System design and major refactoring tasks',
        'model': OPUS_MODEL,
        'estimated_tokens': (20000, 40000),
        'estimated_cost_cents': (80, 200),
        'best_for': ['System design', 'Major refactors', 'Infrastructure changes'],
        'requires_approval': True,
    },
    'opus_planning': {
        'name': 'Opus: Planning',
        'description': 'Feature planning and ticket breakdown',
        'model': OPUS_MODEL,
        'estimated_tokens': (15000, 30000),
        'estimated_cost_cents': (50, 150),
        'best_for': ['Feature planning', 'Task breakdown', 'Complexity analysis'],
        'requires_approval': False,
    },
    'sonnet_implementation': {
        'name': 'Sonnet: Implementation',
        'description': 'Standard feature implementation',
        'model': SONNET_MODEL,
        'estimated_tokens': (10000, 25000),
        'estimated_cost_cents': (10, 50),
        'best_for': ['Standard features', 'Component creation', 'API endpoints'],
        'requires_approval': False,
    },
    'sonnet_bug_fix': {
        'name': 'Sonnet: Bug Fix',
        'description': 'Bug investigation and resolution',
        'model': SONNET_MODEL,
        'estimated_tokens': (8000, 20000),
        'estimated_cost_cents': (8, 40),
        'best_for': ['Bug fixes', 'Error investigation', 'Regression fixes'],
        'requires_approval': False,
    },
    'sonnet_tests': {
        'name': 'Sonnet: Tests',
        'description': 'Test writing and coverage improvement',
        'model': SONNET_MODEL,
        'estimated_tokens': (10000, 25000),
        'estimated_cost_cents': (10, 50),
        'best_for': ['Unit tests', 'Integration tests', 'E2E tests', 'Coverage improvement'],
        'requires_approval': False,
    },
    'haiku_quick_edit': {
        'name': 'Haiku: Quick Edit',
        'description': 'Simple edits, typos, and config changes',
        'model': HAIKU_MODEL,
        'estimated_tokens': (2000, 5000),
        'estimated_cost_cents': (1, 5),
        'best_for': ['Typos', 'Config changes', 'Copy updates', 'Simple refactors'],
        'requires_approval': False,
    },
    'haiku_docs': {
        'name': 'Haiku: Documentation',
        'description': 'Documentation updates and improvements',
        'model': HAIKU_MODEL,
        'estimated_tokens': (3000, 8000),
        'estimated_cost_cents': (1, 5),
        'best_for': ['README updates', 'API docs', 'Code comments', 'Guides'],
        'requires_approval': False,
    },
}

SUGGESTION_REASONS = {
    'sonnet_bug_fix': 'Bug tickets are best handled by Sonnet for efficient investigation and fixes',
    'haiku_docs': "Documentation tasks are perfect for Haiku's fast, focused edits",
    'haiku_quick_edit': "Simple chores with low estimates are ideal for Haiku's quick edits",
    'opus_architecture': "Architecture-labeled tickets benefit from Opus's comprehensive analysis",
    'opus_full_feature': "High-complexity features (5+ points) require Opus's thorough approach",
    'sonnet_implementation': 'Standard implementation task - Sonnet provides a good balance of capability and cost',
}


def protocol_to_dict(protocol_id):
    protocol = PROTOCOLS[protocol_id]
    tokens_min, tokens_max = protocol['estimated_tokens']
    cents_min, cents_max = protocol['estimated_cost_cents']
    return {
        'id': protocol_id,
        'name': protocol['name'],
        'description': protocol['description'],
        'model': protocol['model'],
        'estimated_tokens': {'min': tokens_min, 'max': tokens_max},
        'estimated_cost_cents': {'min': cents_min, 'max': cents_max},
        'best_for': list(protocol['best_for']),
        'requires_approval': protocol['requires_approval'],
    }


def suggest_protocol(ticket_type, estimate=None, labels=None):
    """First matching rule wins; anything unmatched goes to Sonnet"""
    estimate = estimate or 0
    if ticket_type == 'bug':
        return 'sonnet_bug_fix'
    if ticket_type == 'docs':
        return 'haiku_docs'
    if ticket_type == 'chore' and estimate <= 1:
        return 'haiku_quick_edit'
    if labels and 'architecture' in labels:
        return 'opus_architecture'
    if estimate >= 5:
        return 'opus_full_feature'
    return 'sonnet_implementation'
