from cidn.versions import default_user_agent


def test_default_user_agent_value():
    assert default_user_agent() == "OpenCIDN/0.1"


def test_default_user_agent_is_stable():
    assert default_user_agent() == default_user_agent()
    assert "/" in default_user_agent()