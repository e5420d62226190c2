"""
SQLAlchemy Models Package

This package contains all database models organized by domain:
- Identity & Tenancy: User, Portfolio, PortfolioMember, InvitationToken, PermissionAuditLog
- Properties: Property, PropertyTransaction, Loan, PropertyDocument
- Communications: Communication, Contact, CommunicationTemplate
- Learning Hub: LearningProgress, LearningBookmark, LearningAchievement, QuizAttempt
- Forge: tickets, agent executions, token budgets, decisions, registry, foundries, features,
  milestones, projects
"""

# Identity & Tenancy
from axori_api.models.user import User
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.models.invitation import InvitationToken
from axori_api.models.audit_log import PermissionAuditLog

# Properties
from axori_api.models.property import Property
from axori_api.models.transaction import PropertyTransaction
from axori_api.models.loan import Loan
from axori_api.models.document import PropertyDocument

# Communications
from axori_api.models.communication import Communication, Contact, CommunicationTemplate

# Learning Hub
from axori_api.models.learning import LearningProgress, LearningBookmark, LearningAchievement, QuizAttempt

# Forge
from axori_api.models.forge_planning import ForgeFoundry, ForgeFeature, ForgeMilestone, ForgeProject
from axori_api.models.forge_ticket import ForgeTicket, ForgeSubtask, ForgeComment
from axori_api.models.forge_execution import ForgeAgentExecution, ForgeTokenUsage
from axori_api.models.forge_budget import ForgeTokenBudget
from axori_api.models.forge_decision import ForgeDecision
from axori_api.models.forge_registry import ForgeRegistryItem

__all__ = [
    # Identity & Tenancy
    'User',
    'Portfolio',
    'PortfolioMember',
    'InvitationToken',
    'PermissionAuditLog',
    # Properties
    'Property',
    'PropertyTransaction',
    'Loan',
    'PropertyDocument',
    # Communications
    'Communication',
    'Contact',
    'CommunicationTemplate',
    # Learning Hub
    'LearningProgress',
    'LearningBookmark',
    'LearningAchievement',
    'QuizAttempt',
    # Forge
    'ForgeFoundry',
    'ForgeFeature',
    'ForgeMilestone',
    'ForgeProject',
    'ForgeTicket',
    'ForgeSubtask',
    'ForgeComment',
    'ForgeAgentExecution',
    'ForgeTokenUsage',
    'ForgeTokenBudget',
    'ForgeDecision',
    'ForgeRegistryItem',
]
