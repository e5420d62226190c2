"""Learning hub glossary, loaded once from the bundled JSON"""
import json
import os
from functools import lru_cache

GLOSSARY_CATEGORIES = (
    'financing', 'valuation', 'operations', 'taxation', 'acquisition', 'legal',
    'market-analysis', 'investment-metrics', 'property-types', 'strategies'
)
INVESTOR_LEVELS = ('beginner', 'intermediate', 'advanced')

GLOSSARY_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data', 'glossary.json')


@lru_cache(maxsize=1)
def load_glossary():
    with open(GLOSSARY_PATH, encoding='utf-8') as f:
        terms = json.load(f)['terms']
    return sorted(terms, key=lambda term: term['term'].lower())


def get_term(slug):
    return next((term for term in load_glossary() if term['slug'] == slug), None)


def get_related_terms(term):
    related = []
    for slug in term.get('related_terms', []):
        match = get_term(slug)
        if match:
            related.append({'slug': match['slug'], 'term': match['term'],
                            'short_definition': match['short_definition']})
    return related


def search_terms(category=None, level=None, search=None, letter=None):
    terms = load_glossary()
    if category:
        terms = [t for t in terms if t['category'] == category]
    if level:
        terms = [t for t in terms if t['investor_level'] == level]
    if letter:
        terms = [t for t in terms if t['term'][:1].upper() == letter[:1].upper()]
    if search:
        needle = search.lower()
        terms = [
            t for t in terms
            if needle in t['term'].lower()
            or needle in t['short_definition'].lower()
            or any(needle in synonym.lower() for synonym in t.get('synonyms', []))
        ]
    return terms


def category_counts():
    counts = {category: 0 for category in GLOSSARY_CATEGORIES}
    for term in load_glossary():
        counts[term['category']] = counts.get(term['category'], 0) + 1
    return counts
