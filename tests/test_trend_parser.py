from trend_parser import (
    find_handles,
    find_profile_urls,
    find_tweet_urls,
    find_urls,
    parse_trending_data,
)

EVM = "0x6982508145454Ce325dDbE47a25d4ec3d2311933"
SOL = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

REPLY = f"""🔥 Trending on 𝕏
1. https://x.com/alice/status/1790000000000000001 by @Alice_Dev
2. https://twitter.com/bob_sol/status/1790000000000000002
Top profiles: https://x.com/carol and @DAVE
CA {EVM}
{SOL}
more: https://dexscreener.com/solana/abc https://x.com/carol
"""


def test_parse_trending_reply():
    parsed = parse_trending_data(REPLY)

    assert parsed.raw_text == REPLY
    assert parsed.evm_addresses == {EVM}
    assert parsed.solana_addresses == {SOL}
    assert parsed.tweet_urls == {
        "https://x.com/alice/status/1790000000000000001",
        "https://twitter.com/bob_sol/status/1790000000000000002",
    }
    assert parsed.profile_urls == {"https://x.com/carol"}
    assert parsed.profile_handles == {"@alice_dev", "@dave"}


def test_generic_urls_keep_order_and_duplicates():
    parsed = parse_trending_data(REPLY)
    assert parsed.generic_urls[0] == "https://x.com/alice/status/1790000000000000001"
    assert parsed.generic_urls.count("https://x.com/carol") == 2
    assert "https://dexscreener.com/solana/abc" in parsed.generic_urls


def test_tweet_and_profile_urls_are_mutually_exclusive():
    text = (
        "https://x.com/alice/status/1 https://x.com/alice "
        "https://twitter.com/bob/status/22/photo/1 https://x.com/alice_2"
    )
    tweets = find_tweet_urls(text)
    profiles = find_profile_urls(text)
    assert tweets.isdisjoint(profiles)
    assert profiles == {"https://x.com/alice", "https://x.com/alice_2"}
    assert "https://twitter.com/bob/status/22" in tweets


def test_profile_regex_never_returns_handle_prefix_of_tweet():
    assert find_profile_urls("https://x.com/someone/status/123") == frozenset()


def test_handles_are_lowercased_and_deduped():
    assert find_handles("@Foo @foo @BAR_1") == {"@foo", "@bar_1"}


def test_find_urls():
    assert find_urls("a http://a.io b https://b.io http://a.io") == (
        "http://a.io",
        "https://b.io",
        "http://a.io",
    )


def test_parse_is_repeatable():
    assert parse_trending_data(REPLY) == parse_trending_data(REPLY)


def test_parse_empty_text():
    parsed = parse_trending_data("")
    assert parsed.evm_addresses == frozenset()
    assert parsed.generic_urls == ()
