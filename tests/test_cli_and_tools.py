import time

import pytest

import hybrid_mirror
from conftest import FakeSession, css, html
from hybrid_mirror import (
    TOOLS,
    Frontier,
    Settings,
    Throttle,
    TokenBucket,
    clone_website_tool,
    load_config_file,
    main,
    parse_args,
    settings_from_args,
)

SEED = "https://example.com/"


@pytest.fixture
def fake_build_session(monkeypatch):
    session = FakeSession(
        {
            SEED: html("<p>hi</p>", head='<link rel="stylesheet" href="/s.css">'),
            "https://example.com/s.css": css("p{}"),
        }
    )
    monkeypatch.setattr(hybrid_mirror, "build_session", lambda settings=None: session)
    return session


def test_frontier_is_idempotent_and_fifo():
    f = Frontier(["a", "b"])
    assert f.add("a") is False
    assert f.claim() == "a"
    assert f.add("a") is False
    assert f.add("c") is True
    assert [f.claim(), f.claim(), f.claim()] == ["b", "c", None]
    assert f.visited() == {"a", "b", "c"}
    assert len(f) == 0


def test_token_bucket_allows_burst_then_waits():
    bucket = TokenBucket(rate=1.0, capacity=2)
    assert bucket.consume_wait() == 0.0
    assert bucket.consume_wait() == 0.0
    assert bucket.consume_wait() == pytest.approx(1.0, abs=0.05)


def test_throttle_disabled_by_default():
    t = Throttle(Settings())
    start = time.monotonic()
    for _ in range(20):
        assert t.acquire("https://example.com/x") == 0.0
    assert time.monotonic() - start < 0.5


def test_throttle_per_host_buckets_are_independent():
    t = Throttle(Settings(per_host_rps=1000.0, burst=1))
    assert t.acquire("https://a.example/") == 0.0
    assert t.acquire("https://b.example/") == 0.0
    assert set(t.host_buckets) == {"a.example", "b.example"}


def test_toml_config_sets_defaults(tmp_path):
    cfg = tmp_path / "mirror.toml"
    cfg.write_text(
        'timeout = 5.0\n[mirror]\nworkers = 3\n[throttle]\nper_host_rps = 2.5\n',
        encoding="utf-8",
    )
    args = parse_args(["--config", str(cfg), SEED])
    assert args.workers == 3
    assert args.per_host_rps == 2.5
    assert args.timeout == 5.0

    args = parse_args(["--config", str(cfg), SEED, "--workers", "8"])
    assert args.workers == 8


def test_yaml_config(tmp_path):
    cfg = tmp_path / "mirror.yaml"
    cfg.write_text("general:\n  max-seconds: 30\n  burst: 2\n", encoding="utf-8")
    settings = settings_from_args(parse_args(["--config", str(cfg), SEED]))
    assert settings.max_seconds == 30
    assert settings.burst == 2


def test_unknown_config_format(tmp_path):
    cfg = tmp_path / "mirror.ini"
    cfg.write_text("[x]\n", encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config_file(str(cfg))


def test_settings_are_clamped():
    args = parse_args([SEED, "--workers", "0", "--jitter", "5", "--max-seconds", "0"])
    s = settings_from_args(args)
    assert s.workers == 1
    assert s.jitter == 1.0
    assert s.max_seconds is None


def test_tool_reports_success_with_resolved_path(tmp_path, fake_build_session):
    out = tmp_path / "clone"
    msg = TOOLS["cloneWebsite"]({"url": SEED, "outputDir": str(out)})
    assert msg == f"Successfully created a hybrid clone of {SEED} in {out.resolve()}"
    assert (out / "s.css").exists()


def test_tool_defaults_output_dir(tmp_path, monkeypatch, fake_build_session):
    monkeypatch.chdir(tmp_path)
    msg = clone_website_tool({"url": SEED})
    assert msg.endswith(str(tmp_path.resolve() / "cloned-site"))
    assert (tmp_path / "cloned-site" / "index.html").exists()


@pytest.mark.parametrize("params", [{}, {"url": "nope"}, ["https://example.com"]])
def test_tool_reports_failure(params):
    assert clone_website_tool(params).startswith("Failed to clone website:")


def test_main_success(tmp_path, capsys, fake_build_session):
    code = main([SEED, str(tmp_path / "out"), "--workers", "2"])
    assert code == 0
    assert "Successfully created a hybrid clone" in capsys.readouterr().out
    assert (tmp_path / "out" / "index.html").exists()


def test_main_derives_output_from_host(tmp_path, monkeypatch, fake_build_session):
    monkeypatch.chdir(tmp_path)
    assert main([SEED]) == 0
    assert (tmp_path / "example.com" / "index.html").exists()


def test_main_rejects_bad_url(capsys):
    assert main(["example.com"]) == 1
    assert "Invalid URL" in capsys.readouterr().out
