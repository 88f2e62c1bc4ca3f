"""AgentHub - specialist AI agents created on demand, matched to questions and improved over time."""

__version__ = "1.0.0"
