import pytest

from orch_config import Settings


@pytest.fixture
def github_settings() -> Settings:
    return Settings(
        openai_api_key="sk-test",
        github_token="ghp-test",
        github_owner="acme",
        github_repo="site",
        github_branch="main",
        patch_target_file="public/index.html",
        patch_marker_start="<!--START-->",
        patch_marker_end="<!--END-->",
    )
