from zotprof.chatbot.actions import build_record
from zotprof.services.models import Section, SectionInfo, is_almost_full, seat_percent, seats_available


def _section(enrolled, capacity):
    return Section(code="36000", type="Lec", enrolled=enrolled, capacity=capacity)


def test_seat_percent_rounds():
    assert seat_percent(_section(145, 150)) == 97


def test_almost_full_is_strictly_above_80():
    assert is_almost_full(_section(145, 150))
    assert not is_almost_full(_section(120, 150))  # exactly 80%
    assert is_almost_full(_section(121, 150))


def test_zero_capacity_counts_as_full():
    s = _section(0, 0)
    assert seat_percent(s) == 100
    assert is_almost_full(s)
    assert seats_available(s) == 0


def test_overenrolled_has_no_negative_seats():
    assert seats_available(_section(160, 150)) == 0


def test_every_call_site_agrees():
    # 85% enrolled, 15% of seats still open
    s = _section(85, 100)
    info = SectionInfo.from_section(s)
    record = build_record(s, "PATTIS, R.", None, None)
    assert info.almost_full is True
    assert record.section.almost_full is True
    assert info.seats_text == "15/100 seats open (almost full!)"
    assert record.to_dict()["section"]["seats_text"] == info.seats_text


def test_seats_text_when_open():
    info = SectionInfo.from_section(_section(50, 150))
    assert info.seats_text == "100/150 seats open"
    assert info.enrolled_percent == 33
