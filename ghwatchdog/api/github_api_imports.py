"""GitHub API class imports and initialization."""

# Import all the individual components
from ghwatchdog.api.github_api import GitHubAPI
from ghwatchdog.api.github_api_rest import GitHubRestMethods
from ghwatchdog.api.github_api_methods import GitHubApiMethods
from ghwatchdog.api.github_api_content import GitHubContentMethods

# Attach the endpoint methods of each component to GitHubAPI
for component in (GitHubRestMethods, GitHubApiMethods, GitHubContentMethods):
    for method_name in dir(component):
        if not method_name.startswith("__"):  # Skip dunder methods only
            method = getattr(component, method_name)
            if callable(method):
                setattr(GitHubAPI, method_name, method)

# Export only GitHubAPI for use by external code
__all__ = ["GitHubAPI"]
