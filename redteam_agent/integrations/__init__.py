from .github_client import GitHubClient, GitHubError, IssueTracker

__all__ = ["GitHubClient", "GitHubError", "IssueTracker"]
