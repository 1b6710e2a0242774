"""Markup builders mimicking rendered timeline pages."""

from __future__ import annotations


def post_html(
    handle: str,
    status_id: str | None,
    text: str,
    *,
    banner: str = "",
    timestamp: str | None = "2024-05-01T10:00:00.000Z",
    photo: str | None = None,
) -> str:
    link = ""
    if status_id is not None:
        time_tag = f'<time datetime="{timestamp}">May 1</time>' if timestamp else "May 1"
        link = f'<a href="/{handle}/status/{status_id}">{time_tag}</a>'
    photo_html = f'<div data-testid="tweetPhoto"><img src="{photo}"/></div>' if photo else ""
    return f"""
    <article data-testid="tweet">
        {banner}
        <div>
            <img src="https://pbs.twimg.com/profile_images/1/avatar_normal.jpg"/>
            <a href="/{handle}">@{handle}</a>
            {link}
        </div>
        <div lang="en">{text}</div>
        {photo_html}
    </article>
    """


REPOST_BANNER = '<div data-testid="socialContext"><svg aria-label="Retweeted"></svg>Someone reposted</div>'
REPLY_BANNER = '<div>Replying to <a href="/other">@other</a></div>'


def timeline(*posts: str) -> str:
    return "<html><body><main>" + "".join(posts) + "</main></body></html>"


#: Five containers: two valid posts, a repost, a reply and a post without permalink.
SCENARIO = timeline(
    post_html("isro", "101", "Launch window <span>confirmed</span> for Friday"),
    post_html("someone", "102", "A reposted update", banner=REPOST_BANNER),
    post_html("isro", "103", "Thanks for the support!", banner=REPLY_BANNER),
    post_html("isro", None, "Post whose permalink did not render"),
    post_html("isro", "105", "Satellite placed in orbit", photo="https://pbs.twimg.com/media/abc.jpg"),
)
