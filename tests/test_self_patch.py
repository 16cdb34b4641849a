import json

from fakes import FakeCompletion, FakeHost
from orch_config import Settings
from orch_errors import RemoteWriteError, UpstreamError
from self_patch import SelfPatchEngine, pr_title_for

TARGET = "public/index.html"
FILE_BODY = "<html>\n<!--START-->old<!--END-->\n</html>\n"
FIXED_TS = 1_760_000_000.25


def _instruction(**overrides):
    data = {
        "filePath": TARGET,
        "markerStart": "<!--START-->",
        "markerEnd": "<!--END-->",
        "newContent": "new",
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


def _engine(settings, completion, host):
    return SelfPatchEngine(
        completion,
        settings_loader=lambda: settings,
        host_factory=lambda s: host,
        clock=lambda: FIXED_TS,
    )


def test_happy_path_opens_pull_request(github_settings):
    completion = FakeCompletion(_instruction())
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("加一行提示文字")

    assert reply == "已创建 PR：https://github.com/acme/site/pull/1"

    branch = "auto-dev-20251009-085320-250"
    assert host.branches[branch] == "base-sha-123456"
    assert host.calls == ["get_branch_sha", "create_branch", "get_file", "put_file", "create_pull_request"]

    commit = host.commits[0]
    assert commit["branch"] == branch
    assert commit["sha"] == host.file_sha[TARGET]
    assert commit["content"] == "<html>\n<!--START-->\nnew\n<!--END-->\n</html>\n"
    # default branch content is untouched
    assert host.files[TARGET] == FILE_BODY

    pr = host.pulls[0]
    assert pr["head"] == branch
    assert pr["base"] == "main"
    assert pr["title"] == pr_title_for("加一行提示文字")
    assert "加一行提示文字" in pr["body"]
    assert "+new" in pr["body"]


def test_model_gets_json_only_prompt_and_demand(github_settings):
    completion = FakeCompletion(_instruction())
    _engine(github_settings, completion, FakeHost({TARGET: FILE_BODY})).run("加一行提示文字")
    system, user = completion.calls[0]
    assert system["role"] == "system"
    assert "JSON" in system["content"]
    assert TARGET in system["content"]
    assert user == {"role": "user", "content": "加一行提示文字"}


def test_prose_around_json_is_tolerated(github_settings):
    completion = FakeCompletion("好的，修改如下：\n```json\n" + _instruction() + "\n```")
    host = FakeHost({TARGET: FILE_BODY})
    assert _engine(github_settings, completion, host).run("x").startswith("已创建 PR：")


def test_unparseable_output_is_reported_with_raw_text(github_settings):
    completion = FakeCompletion("抱歉，我不能输出 JSON。")
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("x")
    assert reply.startswith("自动开发失败：")
    assert "抱歉，我不能输出 JSON。" in reply
    assert host.calls == []


def test_missing_field_is_reported(github_settings):
    completion = FakeCompletion(_instruction(newContent=""))
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("x")
    assert "newContent" in reply
    assert host.calls == []


def test_other_file_path_is_rejected(github_settings):
    completion = FakeCompletion(_instruction(filePath="server.py"))
    host = FakeHost({TARGET: FILE_BODY, "server.py": "x"})
    reply = _engine(github_settings, completion, host).run("x")
    assert "server.py" in reply
    assert host.calls == []


def test_leading_slash_file_path_is_normalized(github_settings):
    completion = FakeCompletion(_instruction(filePath="/" + TARGET))
    host = FakeHost({TARGET: FILE_BODY})
    assert _engine(github_settings, completion, host).run("x").startswith("已创建 PR：")


def test_missing_marker_is_reported_and_branch_named(github_settings):
    completion = FakeCompletion(_instruction(markerStart="<!--NOPE-->"))
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("x")
    assert "<!--NOPE-->" in reply
    assert "请检查标记" in reply
    assert "auto-dev-20251009-085320-250" in reply
    assert host.commits == []
    assert host.pulls == []


def test_branch_creation_failure_has_permission_hint(github_settings):
    completion = FakeCompletion(_instruction())
    host = FakeHost(
        {TARGET: FILE_BODY},
        fail={"create_branch": RemoteWriteError("创建分支", "Resource not accessible by integration", status=403)},
    )
    reply = _engine(github_settings, completion, host).run("x")
    assert "Resource not accessible by integration" in reply
    assert RemoteWriteError.PERMISSION_HINT in reply
    assert "未被删除" not in reply


def test_failure_after_branch_leaves_branch_and_says_so(github_settings):
    completion = FakeCompletion(_instruction())
    host = FakeHost(
        {TARGET: FILE_BODY},
        fail={"create_pull_request": RemoteWriteError("创建 Pull Request", "Validation Failed", status=422)},
    )
    reply = _engine(github_settings, completion, host).run("x")
    assert "Validation Failed" in reply
    assert "auto-dev-20251009-085320-250" in reply
    assert "auto-dev-20251009-085320-250" in host.branches
    assert len(host.commits) == 1


def test_stale_file_sha_conflict_is_reported(github_settings):
    completion = FakeCompletion(_instruction())
    host = FakeHost(
        {TARGET: FILE_BODY},
        fail={"put_file": RemoteWriteError("提交文件", "is at 111 but expected 222", status=409)},
    )
    reply = _engine(github_settings, completion, host).run("x")
    assert "HTTP 409" in reply
    assert host.pulls == []


def test_missing_github_config_is_reported_without_model_call():
    completion = FakeCompletion(_instruction())
    settings = Settings(openai_api_key="sk-test")
    reply = _engine(settings, completion, FakeHost()).run("x")
    assert "GITHUB_TOKEN" in reply
    assert "ORCH_PATCH_TARGET_FILE" in reply
    assert completion.calls == []


def test_upstream_failure_is_reported(github_settings):
    completion = FakeCompletion(UpstreamError("模型服务超时（30 秒）。"))
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("x")
    assert "模型服务超时" in reply
    assert host.calls == []


def test_title_is_single_line_and_bounded():
    title = pr_title_for("第一行\n第二行 " + "很长" * 100)
    assert "\n" not in title
    assert title.startswith("[auto-dev] 第一行 第二行")
    assert len(title) <= len("[auto-dev] ") + 72


def test_unexpected_exception_becomes_reply(github_settings):
    completion = FakeCompletion(RuntimeError("socket closed"))
    host = FakeHost({TARGET: FILE_BODY})
    reply = _engine(github_settings, completion, host).run("x")
    assert reply.startswith("自动开发失败：")
    assert "socket closed" in reply
    assert host.calls == []
