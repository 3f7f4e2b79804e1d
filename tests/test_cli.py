import pytest

from newsdesk.main import _positive_int, cli_main


@pytest.mark.asyncio
@pytest.mark.parametrize("hours", ["0", "-3"])
async def test_merge_rejects_window_below_one_hour(hours):
    with pytest.raises(SystemExit) as exc:
        await cli_main(["merge", "--hours", hours])
    assert exc.value.code == 2


def test_positive_int_accepts_whole_hours():
    assert _positive_int("12") == 12
