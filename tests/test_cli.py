import pytest

from cupcake.cli import build_parser, main, read_encoded_lines, report
from cupcake.domain.models import BatchResult, SubmissionOutcome


def test_parser_global_options_and_subcommand():
    args = build_parser().parse_args(
        ["--policy", "stop-on-failure", "--timeout", "20", "sign-submit", "txs.b64", "--keypair", "id.json"]
    )

    assert args.command == "sign-submit"
    assert args.policy == "stop-on-failure"
    assert args.timeout == 20.0
    assert args.keypair == "id.json"


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_read_encoded_lines_skips_blanks_and_comments(tmp_path):
    path = tmp_path / "txs.b64"
    path.write_text("# batch 1\nAAAA\n\n  BBBB  \n")

    assert read_encoded_lines(str(path)) == ["AAAA", "BBBB"]


def test_report_exit_codes(capsys):
    clean = BatchResult(count=1, total=1, outcomes=[SubmissionOutcome.confirmed("sig-a", 7)])
    failed = BatchResult(count=1, total=1, outcomes=[SubmissionOutcome.timed_out("sig-b")])
    truncated = BatchResult(count=0, total=2)

    assert report(clean) == 0
    assert "confirmed\tsig-a\t7" in capsys.readouterr().out
    assert report(failed) == 1
    assert report(truncated) == 1


def test_missing_config_exits_with_2(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "absent.toml"), "submit", "txs.b64"])

    assert code == 2
    assert "Config file not found" in capsys.readouterr().err


def test_truncated_batch_still_prints_confirmed_prefix(capsys):
    result = BatchResult(count=1, total=3, outcomes=[SubmissionOutcome.confirmed("sig-a", 7)])

    assert report(result) == 1
    assert "confirmed\tsig-a\t7" in capsys.readouterr().out
