from datetime import datetime, timedelta, timezone

from recipe_import.models.evidence import ContentType, Platform
from recipe_import.tools.evidence_adapters import (
    FacebookAdapter,
    InstagramAdapter,
    detect_content_type,
    detect_platform,
)

FETCHED_AT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
IG_IMAGE = "https://scontent-iad3-1.cdninstagram.com/v/t51.2885-15/abc_n.jpg"
FB_IMAGE = "https://scontent.fxyz1-1.fna.fbcdn.net/v/t15.5256-10/thumb_n.jpg"


def test_detect_platform():
    assert detect_platform("https://www.instagram.com/p/abc/") == Platform.INSTAGRAM
    assert detect_platform("https://m.facebook.com/story.php?id=1") == Platform.FACEBOOK
    assert detect_platform("https://fb.watch/xyz/") == Platform.FACEBOOK
    assert detect_platform("https://example.com/recipe") == Platform.UNKNOWN


def test_detect_content_type_by_path():
    assert detect_content_type("https://www.instagram.com/reel/abc/") == ContentType.REEL
    assert detect_content_type("https://www.instagram.com/tv/abc/") == ContentType.REEL
    assert detect_content_type("https://www.instagram.com/p/abc/") == ContentType.POST
    assert detect_content_type("https://www.facebook.com/reel/123") == ContentType.REEL
    assert detect_content_type("https://www.facebook.com/share/r/abc/") == ContentType.REEL
    assert detect_content_type("https://fb.watch/xyz/") == ContentType.REEL
    assert detect_content_type("https://www.facebook.com/watch/?v=123") == ContentType.VIDEO
    assert detect_content_type("https://www.facebook.com/page/videos/123/") == ContentType.VIDEO
    assert detect_content_type("https://www.facebook.com/page/posts/123") == ContentType.POST


def test_instagram_record_is_normalized():
    record = {
        "caption": "Best pancakes #breakfast #Pancakes",
        "displayUrl": IG_IMAGE,
        "images": ["https://evil.example.com/x.jpg", IG_IMAGE],
        "videoUrl": "https://scontent.cdninstagram.com/v/video.mp4",
        "videoDuration": 31.5,
        "type": "Video",
        "ownerUsername": "chef",
        "ownerFullName": "Chef Cook",
        "ownerProfilePicUrl": "https://scontent.cdninstagram.com/avatar.jpg",
        "likesCount": 10,
        "commentsCount": 2,
        "videoPlayCount": 900,
        "latestComments": [
            {"ownerUsername": "chef", "text": "Bake at 180C"},
            {"ownerUsername": "fan", "text": "yum"},
        ],
    }

    evidence = InstagramAdapter().to_evidence(record, "https://www.instagram.com/p/abc/", ContentType.POST, FETCHED_AT)

    assert evidence.caption_text == "Best pancakes #breakfast #Pancakes"
    assert [i.url for i in evidence.images] == [IG_IMAGE]
    assert evidence.video.url.endswith("video.mp4")
    assert evidence.video.duration_seconds == 31.5
    assert evidence.video.expires_at == FETCHED_AT + timedelta(hours=1)
    assert evidence.content_type == ContentType.REEL
    assert evidence.author.handle == "chef"
    assert evidence.author_comments == ("Bake at 180C",)
    assert evidence.engagement.views == 900
    assert evidence.hashtags == ("breakfast", "pancakes")
    assert evidence.platform == Platform.INSTAGRAM


def test_instagram_record_without_video():
    evidence = InstagramAdapter().to_evidence({"caption": "hi"}, "https://www.instagram.com/p/abc/", ContentType.POST)

    assert evidence.video is None
    assert evidence.images == ()
    assert evidence.content_type == ContentType.POST


def test_facebook_reel_record_uses_reel_field_names():
    record = {
        "text": "Quick noodles",
        "video_url": "https://video.xx.fbcdn.net/v/reel.mp4",
        "length_in_second": 45,
        "preferred_thumbnail": {"image": {"uri": FB_IMAGE}},
        "owner": {"name": "Noodle Page", "profilePicUrl": "https://scontent.xx.fbcdn.net/p.jpg"},
        "playCountRounded": 1200,
    }

    evidence = FacebookAdapter().to_evidence(record, "https://www.facebook.com/reel/1", ContentType.REEL, FETCHED_AT)

    assert evidence.caption_text == "Quick noodles"
    assert evidence.video.url.endswith("reel.mp4")
    assert evidence.video.duration_seconds == 45.0
    assert [i.url for i in evidence.images] == [FB_IMAGE]
    assert evidence.author.display_name == "Noodle Page"
    assert evidence.engagement.views == 1200


def test_facebook_post_record_reads_message_and_attachments():
    record = {
        "message": {"text": "Grandma's stew"},
        "mediaAttachments": [
            {"url": "https://static.xx.fbcdn.net/rsrc.php/v3/icon.png"},
        ],
        "attachments": [{"media": {"image": {"uri": "https://external.example.com/ad.jpg"}}}],
        "pageName": "Stew Co",
        "comments": [{"text": "nice"}],
    }

    evidence = FacebookAdapter().to_evidence(record, "https://www.facebook.com/p/1", ContentType.POST, FETCHED_AT)

    assert evidence.caption_text == "Grandma's stew"
    assert evidence.video is None
    assert evidence.images == ()
    assert evidence.author.handle == "Stew Co"
    assert evidence.engagement.comments == 0


def test_facebook_prefers_apify_proxy_image():
    proxy = "https://images.apifyusercontent.com/abc123/thumb"
    record = {"text": "x", "nested": {"deep": [{"thumb": proxy}]}, "thumbnail": FB_IMAGE}

    evidence = FacebookAdapter().to_evidence(record, "https://www.facebook.com/reel/1", ContentType.REEL)

    assert [i.url for i in evidence.images] == [proxy]
