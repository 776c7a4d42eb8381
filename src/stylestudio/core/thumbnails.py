"""Thumbnail selection for migrated templates.

The legacy catalog carries no image references, so each template gets a
preview image picked from the bundled ``/image`` set by looking at its title
and content.  Matching runs in three passes and stops at the first hit:

1. **Exact**: the cleaned title contains (or is contained in) the name of a
   bundled thumbnail.
2. **Keyword**: the longest keyword from :data:`KEYWORD_THUMBNAILS` found in
   the title or content.
3. **Scene**: the scene pattern with the most keyword hits, if it has at
   least two.

Anything else gets :data:`~stylestudio.core.models.DEFAULT_THUMBNAIL`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from stylestudio.core.models import DEFAULT_THUMBNAIL

MatchType = Literal["exact", "keyword", "fuzzy", "default"]

AVAILABLE_THUMBNAILS: dict[str, str] = {
    "雨夜等车": "/image/film-grid-rainy-night.png",
    "雨夜出逃": "/image/雨夜出逃.png",
    "酒店出浴": "/image/酒店出浴.png",
    "猫咪夕阳": DEFAULT_THUMBNAIL,
    "征服高山": "/image/征服高山.png",
    "草原听风": "/image/草原听风.png",
    "星河听梦": "/image/星河听梦.png",
    "花海听风": "/image/花海听风.png",
    "沙漠星空": "/image/沙漠星空.png",
    "青春校园": "/image/青春校园.png",
    "蕾丝美女": "/image/蕾丝美女.png",
    "圣诞写真": "/image/圣诞写真.png",
    "新年锦鲤": "/image/新年锦鲤.png",
    "职场女生": "/image/职场女生.png",
    "雪景写真": "/image/雪景写真.png",
    "古典旗袍": "/image/古典旗袍.png",
    "室内光影": "/image/室内光影.png",
}

KEYWORD_THUMBNAILS: dict[str, str] = {
    "雨夜": "/image/雨夜出逃.png",
    "雨": "/image/雨夜出逃.png",
    "等车": "/image/film-grid-rainy-night.png",
    "公交": "/image/film-grid-rainy-night.png",
    "车站": "/image/film-grid-rainy-night.png",
    "酒店": "/image/酒店出浴.png",
    "浴室": "/image/酒店出浴.png",
    "浴袍": "/image/酒店出浴.png",
    "出浴": "/image/酒店出浴.png",
    "高山": "/image/征服高山.png",
    "山峰": "/image/征服高山.png",
    "登山": "/image/征服高山.png",
    "征服": "/image/征服高山.png",
    "云海": "/image/征服高山.png",
    "草原": "/image/草原听风.png",
    "听风": "/image/草原听风.png",
    "风": "/image/草原听风.png",
    "星河": "/image/星河听梦.png",
    "星空": "/image/沙漠星空.png",
    "银河": "/image/星河听梦.png",
    "繁星": "/image/沙漠星空.png",
    "听梦": "/image/星河听梦.png",
    "花海": "/image/花海听风.png",
    "薰衣草": "/image/花海听风.png",
    "紫色": "/image/花海听风.png",
    "沙漠": "/image/沙漠星空.png",
    "沙丘": "/image/沙漠星空.png",
    "校园": "/image/青春校园.png",
    "青春": "/image/青春校园.png",
    "学院": "/image/青春校园.png",
    "学生": "/image/青春校园.png",
    "栏杆": "/image/青春校园.png",
    "蕾丝": "/image/蕾丝美女.png",
    "镂空": "/image/蕾丝美女.png",
    "香槟": "/image/蕾丝美女.png",
    "圣诞": "/image/圣诞写真.png",
    "礼物": "/image/圣诞写真.png",
    "圣诞帽": "/image/圣诞写真.png",
    "新年": "/image/新年锦鲤.png",
    "锦鲤": "/image/新年锦鲤.png",
    "金色": "/image/新年锦鲤.png",
    "职场": "/image/职场女生.png",
    "衬衫": "/image/职场女生.png",
    "通勤": "/image/职场女生.png",
    "笔电": "/image/职场女生.png",
    "雪": "/image/雪景写真.png",
    "雪景": "/image/雪景写真.png",
    "雪地": "/image/雪景写真.png",
    "围巾": "/image/雪景写真.png",
    "旗袍": "/image/古典旗袍.png",
    "古典": "/image/古典旗袍.png",
    "蓝花": "/image/古典旗袍.png",
    "室内": "/image/室内光影.png",
    "光影": "/image/室内光影.png",
    "逆光": "/image/室内光影.png",
    "轮廓光": "/image/室内光影.png",
}

# Longest keywords first so that "圣诞帽" wins over "圣诞".  sorted() is stable,
# so equal-length keywords keep their table order.
_KEYWORDS_BY_LENGTH = sorted(KEYWORD_THUMBNAILS, key=len, reverse=True)

SCENE_PATTERNS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("夜", "城市", "街道", "霓虹"), "/image/雨夜出逃.png"),
    (("山", "云", "日出", "登山"), "/image/征服高山.png"),
    (("草", "风", "天空", "自然"), "/image/草原听风.png"),
    (("星", "夜空", "银河", "宇宙"), "/image/沙漠星空.png"),
    (("花", "田野", "紫色", "浪漫"), "/image/花海听风.png"),
    (("学校", "青春", "清新", "校服"), "/image/青春校园.png"),
    (("优雅", "高贵", "香槟", "室内"), "/image/蕾丝美女.png"),
    (("节日", "庆祝", "红色", "装饰"), "/image/圣诞写真.png"),
    (("工作", "办公", "专业", "现代"), "/image/职场女生.png"),
    (("冬天", "寒冷", "白色", "温暖"), "/image/雪景写真.png"),
    (("传统", "东方", "典雅", "文化"), "/image/古典旗袍.png"),
    (("光线", "阴影", "艺术", "摄影"), "/image/室内光影.png"),
)

_TITLE_NOISE = re.compile(r"[：。，、\s]")


@dataclass(frozen=True)
class ThumbnailMatch:
    """Chosen thumbnail and the pass that chose it."""

    path: str
    match_type: MatchType


def _exact_match(title: str) -> str | None:
    clean_title = _TITLE_NOISE.sub("", title)
    if not clean_title:
        return None
    for name, path in AVAILABLE_THUMBNAILS.items():
        clean_name = _TITLE_NOISE.sub("", name)
        if clean_name in clean_title or clean_title in clean_name:
            return path
    return None


def _keyword_match(title: str, content: str) -> str | None:
    search_text = f"{title} {content}".lower()
    for keyword in _KEYWORDS_BY_LENGTH:
        if keyword in search_text:
            return KEYWORD_THUMBNAILS[keyword]
    return None


def _scene_match(title: str, content: str) -> str | None:
    search_text = f"{title} {content}"
    best_path = None
    best_score = 0
    for keywords, path in SCENE_PATTERNS:
        score = sum(1 for keyword in keywords if keyword in search_text)
        if score >= 2 and score > best_score:
            best_score = score
            best_path = path
    return best_path


def match_thumbnail(title: str, content: str) -> ThumbnailMatch:
    """Pick a thumbnail for a template.

    Args:
        title: Template title
        content: Template prompt body

    Returns:
        ThumbnailMatch with the image path and the pass that matched
    """
    if not title or not content:
        return ThumbnailMatch(DEFAULT_THUMBNAIL, "default")

    exact = _exact_match(title)
    if exact:
        return ThumbnailMatch(exact, "exact")

    keyword = _keyword_match(title, content)
    if keyword:
        return ThumbnailMatch(keyword, "keyword")

    scene = _scene_match(title, content)
    if scene:
        return ThumbnailMatch(scene, "fuzzy")

    return ThumbnailMatch(DEFAULT_THUMBNAIL, "default")
