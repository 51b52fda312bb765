from __future__ import annotations

POST_LINK = 'a[href*="/post/"]'
EXTERNAL_LINK = 'a[href^="http"]'
TEXT_BLOCK = 'div[dir="auto"], span[dir="auto"]'
QUOTED_TEXT_BLOCK = 'div[dir="auto"]'
ACTION_CONTROL = 'div[role="button"]'
TIMESTAMP = "time"
IMAGE = "img"

AVATAR = 'img[alt*="大頭貼"], img[alt*="profile picture"], img[alt*="avatar"]'
POST_AVATAR = 'img[alt*="大頭貼"], img[alt*="profile"], img[alt*="avatar"]'
VERIFIED_BADGE = (
    'svg[aria-label*="已驗證"], svg[aria-label*="Verified"], '
    'img[alt*="已驗證"], img[alt*="Verified"]'
)

MAIN_REGION = 'div[role="main"]'
PROFILE_REGION = '[role="region"]'
PROFILE_HEADING = "h1"
FOLLOWERS_LINK = 'a[href*="followers"], a[href*="login"]'
FOLLOWING_LINK = 'a[href*="following"]'
DIALOG = '[role="dialog"]'

LOGIN_CONTROL = 'button, a[role="button"]'
LOGIN_DIALOG_LINK = '[role="dialog"] a[href*="login"]'

SPINNER = '[role="progressbar"], div[aria-label*="Loading"], div[aria-label*="載入"]'
