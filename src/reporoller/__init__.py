"""RepoRoller - roll a repository into a single LLM-ready bundle within budget."""

__version__ = "0.1.0"
