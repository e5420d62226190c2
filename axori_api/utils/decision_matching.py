"""Pick the engineering decisions relevant to a ticket and format them for an agent prompt"""
import re

from axori_api.models.forge_decision import ForgeDecision

SMALL_SET_SIZE = 5
MAX_MATCHES = 7

WORD_PATTERN = re.compile(r'[a-z0-9]+')


def ticket_keywords(ticket):
    words = set(WORD_PATTERN.findall(f'{ticket.title} {ticket.description or ""}'.lower()))
    words.update(label.lower() for label in (ticket.labels or []))
    if ticket.type:
        words.add(ticket.type)
    return words


def score_decision(decision, keywords):
    scope = {tag.lower() for tag in (decision.scope or [])}
    return len(scope & keywords)


def match_decisions(ticket):
    """Active decisions ranked by scope overlap with the ticket"""
    decisions = ForgeDecision.query.filter_by(active=True).order_by(ForgeDecision.identifier).all()
    if len(decisions) <= SMALL_SET_SIZE:
        return decisions

    keywords = ticket_keywords(ticket)
    scored = [(score_decision(decision, keywords), decision) for decision in decisions]
    relevant = [decision for score, decision in sorted(scored, key=lambda item: -item[0]) if score > 0]
    if not relevant:
        return decisions[:SMALL_SET_SIZE]
    return relevant[:MAX_MATCHES]


def format_decisions_for_prompt(decisions):
    if not decisions:
        return ''
    lines = ['## Decisions to Follow', '']
    for decision in decisions:
        lines.append(f'- **{decision.identifier}** ({decision.category}): {decision.decision}')
        if decision.context:
            lines.append(f'  Context: {decision.context}')
    return '\n'.join(lines)
