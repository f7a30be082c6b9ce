import json

from onboarding.extraction import (
    extract_domain,
    extract_email,
    extract_phone,
    extract_services,
    normalize_extracted,
    normalize_phone,
    parse_address,
    parse_ai_reply,
    parse_business_hours,
    parse_time,
)


class TestParseAIReply:
    def test_fenced_json(self):
        text = '```json\n{"message": "Hi", "extractedData": {"greeted": true}, "readyToAdvance": true}\n```'
        reply = parse_ai_reply(text)
        assert reply.message == "Hi"
        assert reply.extracted_data == {"greeted": True}
        assert reply.ready_to_advance is True

    def test_json_wrapped_in_prose(self):
        reply = parse_ai_reply('Sure! {"message": "Noted", "readyToAdvance": false} Hope that helps.')
        assert reply.message == "Noted"
        assert reply.ready_to_advance is False

    def test_plain_text_passes_through(self):
        reply = parse_ai_reply("Sorry, could you repeat that?")
        assert reply.message == "Sorry, could you repeat that?"
        assert reply.extracted_data is None
        assert reply.ready_to_advance is False

    def test_broken_json_passes_through(self):
        reply = parse_ai_reply('{"message": "oops",')
        assert reply.message == '{"message": "oops",'
        assert reply.extracted_data is None

    def test_ready_flag_must_be_a_real_boolean(self):
        assert parse_ai_reply('{"message": "x", "readyToAdvance": "true"}').ready_to_advance is False

    def test_confirmation_items_and_ui_action(self):
        payload = {
            "message": "Is this right?",
            "confirmationNeeded": [
                {"field": "phone", "value": "(555) 123-4567", "question": "Is this your number?"},
                "junk",
                {"value": 1},
            ],
            "uiAction": {"type": "show_photo_upload", "config": {"required": ["logo"]}},
        }
        reply = parse_ai_reply(json.dumps(payload))
        assert [item.field for item in reply.confirmation_needed] == ["phone"]
        assert reply.ui_action.type == "show_photo_upload"
        assert reply.ui_action.config == {"required": ["logo"]}

    def test_ui_action_without_type_is_dropped(self):
        assert parse_ai_reply('{"message": "x", "uiAction": {"type": 5}}').ui_action is None


class TestNormalisation:
    def test_phone_formats(self):
        assert normalize_phone("5551234567") == "(555) 123-4567"
        assert normalize_phone("+1 555 123 4567") == "(555) 123-4567"
        assert normalize_phone("12345") == "12345"

    def test_normalize_extracted(self):
        data = normalize_extracted({"email": " Info@Acme.COM ", "phone": "555.123.4567", "services": "cuts, color"})
        assert data == {"email": "info@acme.com", "phone": "(555) 123-4567", "services": ["cuts", "color"]}
        assert normalize_extracted(None) is None


class TestHours:
    def test_parse_time(self):
        assert parse_time("9am") == "09:00"
        assert parse_time("1:30 pm") == "13:30"
        assert parse_time("12am") == "00:00"
        assert parse_time("whenever") == "whenever"

    def test_nine_to_five_closed_weekends(self):
        hours = parse_business_hours("We're open 9 to 5, closed weekends")
        assert hours["mon"] == {"open": "09:00", "close": "17:00"}
        assert hours["fri"] == {"open": "09:00", "close": "17:00"}
        assert hours["sat"] == "closed"
        assert hours["sun"] == "closed"

    def test_explicit_meridiem(self):
        hours = parse_business_hours("8am-6pm")
        assert hours["wed"] == {"open": "08:00", "close": "18:00"}
        assert "sat" not in hours


class TestAddress:
    def test_full_address(self):
        assert parse_address("We're at 123 Main St, Springfield, IL 62701") == {
            "street": "123 Main St",
            "city": "Springfield",
            "state": "IL",
            "zip": "62701",
        }

    def test_full_state_name(self):
        assert parse_address("500 Elm Ave, Austin, Texas 78701")["state"] == "TX"

    def test_fragments(self):
        assert parse_address("Somewhere in Texas 75001") == {"zip": "75001", "state": "TX"}
        assert parse_address("no idea") == {}


class TestExtractors:
    def test_email(self):
        assert extract_email("Reach me at Owner@Acme.COM.") == "owner@acme.com"
        assert extract_email("no email here") is None

    def test_phone(self):
        assert extract_phone("call 555.123.4567 anytime") == "(555) 123-4567"
        assert extract_phone("zip is 62701-1234") is None
        assert extract_phone("nothing") is None

    def test_domain(self):
        assert extract_domain("visit https://www.AcmePlumbing.com today") == "acmeplumbing.com"
        assert extract_domain("email me at bob@acme.com") is None
        assert extract_domain("no site") is None

    def test_services(self):
        assert extract_services("We do drain cleaning and pipe repair.") == ["drain cleaning", "pipe repair"]
        assert extract_services("Our services are cuts, color; styling") == ["cuts", "color", "styling"]
