"""Email templates for course notifications.

HTML templates following the course visual identity:
- Navy: #1B3A57
- Gold: #D4AF37
- Cream background: #FBF7F0
- Text: #2C2C2C
- Muted sage: #7C8471
"""

import html
from datetime import datetime

from dripcourse.enrollments.content import COURSE_NAME, WeekContent


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title} - {course_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #FBF7F0; font-family: Georgia, serif; line-height: 1.6; color: #2C2C2C;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #FBF7F0;">
    <tr>
      <td align="center" style="padding: 32px 16px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="max-width: 600px; background-color: #FFFFFF;">
          <!-- Header -->
          <tr>
            <td style="background-color: {header_background}; padding: 30px; text-align: center;">
              <h1 style="margin: 0; color: {header_color};">{heading}</h1>
              <p style="margin: 8px 0 0; color: {header_color};">{subheading}</p>
            </td>
          </tr>

          <!-- Content -->
          <tr>
            <td style="padding: 30px;">
              {content}
            </td>
          </tr>

          <!-- Footer -->
          <tr>
            <td style="padding: 20px; text-align: center; color: #7C8471; font-size: 12px;">
              {course_name} | Discovering Your Divine Purpose<br>
              &copy; {year} All Rights Reserved
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

BUTTON_TEMPLATE = """
<p style="text-align: center;">
  <a href="{href}" style="display: inline-block; padding: 15px 30px; background: {background}; color: {color}; text-decoration: none; border-radius: 5px; font-weight: bold; margin: 20px 0;">
    {label}
  </a>
</p>
"""


def _session_items(sessions: tuple[str, ...]) -> str:
    return "".join(f"<li>{html.escape(session)}</li>" for session in sessions)


def _session_lines(sessions: tuple[str, ...]) -> str:
    return "\n".join(f"- {session}" for session in sessions)


# ==============================================================================
# Template: Welcome (sent on activation)
# ==============================================================================

WELCOME_CONTENT = """
<h2 style="margin: 0 0 16px;">Dear {email},</h2>

<p>Congratulations on taking this transformative step! We're thrilled to have you join our {total_weeks}-week masterclass.</p>

<h3>Here's what happens next:</h3>
<ul>
  <li><strong>Week 1 materials are now available!</strong> You can access them immediately.</li>
  <li>New content will unlock every {interval_days} days automatically</li>
  <li>Download your Purpose Discovery Workbook from the student portal</li>
</ul>

{button}

<h3>Your First Week: {week_title}</h3>
<p>This week, you'll explore:</p>
<ul>
  {sessions}
</ul>

<p><strong>Important:</strong> Save this email! Your unique access link above is your key to the student portal.</p>

<h3>Need Help?</h3>
<p>If you have any questions or technical issues, please email us at {support_email}</p>

<p>Blessings,<br>The {course_name} Team</p>
"""


def render_welcome(
    email: str,
    portal_link: str,
    first_week: WeekContent,
    support_email: str,
    total_weeks: int = 6,
    interval_days: int = 7,
) -> tuple[str, str]:
    """Render the welcome email sent when an enrollment is activated.

    Args:
        email: Customer email address (used as the greeting)
        portal_link: Portal URL including the access token
        first_week: Content of week 1
        support_email: Support contact address
        total_weeks: Course length in weeks
        interval_days: Days between unlocks

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    now = datetime.now()
    button = BUTTON_TEMPLATE.format(
        href=html.escape(portal_link, quote=True),
        background="#D4AF37",
        color="#1B3A57",
        label="Access Your Student Portal",
    )
    content = WELCOME_CONTENT.format(
        email=html.escape(email),
        total_weeks=total_weeks,
        interval_days=interval_days,
        button=button,
        week_title=html.escape(first_week.title),
        sessions=_session_items(first_week.sessions),
        support_email=html.escape(support_email),
        course_name=COURSE_NAME,
    )
    body_html = BASE_TEMPLATE.format(
        title="Welcome",
        course_name=COURSE_NAME,
        header_background="#1B3A57",
        header_color="#D4AF37",
        heading=f"Welcome to {COURSE_NAME}!",
        subheading="Your journey to discovering your divine purpose begins now",
        content=content,
        year=now.year,
    )

    plain_text = f"""
Welcome to {COURSE_NAME}!

Dear {email},

Congratulations on taking this transformative step! We're thrilled to have
you join our {total_weeks}-week masterclass.

- Week 1 materials are now available.
- New content will unlock every {interval_days} days automatically.

Access your student portal:
{portal_link}

Your First Week: {first_week.title}
{_session_lines(first_week.sessions)}

Save this email! Your unique access link above is your key to the portal.

Questions? Email us at {support_email}

Blessings,
The {COURSE_NAME} Team
"""
    return body_html, plain_text.strip()


# ==============================================================================
# Template: Week Unlocked
# ==============================================================================

WEEK_UNLOCKED_CONTENT = """
<p>{intro}</p>

<h3>This Week's Journey:</h3>
<ul>
  {sessions}
</ul>

{button}

<p>Remember to download this week's reflection journal and join our community discussions!</p>

<p>Keep pressing forward in your purpose journey!</p>

<p>Blessings,<br>The {course_name} Team</p>
"""


def render_week_unlocked(
    week: WeekContent,
    portal_link: str,
) -> tuple[str, str]:
    """Render the email announcing that a week's content is available.

    Args:
        week: Content of the week that was unlocked
        portal_link: Portal URL including the access token

    Returns:
        Tuple of (html_content, plain_text_content)
    """
    now = datetime.now()
    if week.week > 1:
        intro = (
            f"Congratulations on completing Week {week.week - 1}! "
            "Your next week of content is now unlocked."
        )
    else:
        intro = "Your first week of content is now unlocked."

    button = BUTTON_TEMPLATE.format(
        href=html.escape(portal_link, quote=True),
        background="#1B3A57",
        color="#FFFFFF",
        label=f"Access Week {week.week} Content",
    )
    content = WEEK_UNLOCKED_CONTENT.format(
        intro=intro,
        sessions=_session_items(week.sessions),
        button=button,
        course_name=COURSE_NAME,
    )
    body_html = BASE_TEMPLATE.format(
        title=f"Week {week.week} Unlocked",
        course_name=COURSE_NAME,
        header_background="#D4AF37",
        header_color="#1B3A57",
        heading=f"Week {week.week} is Now Available!",
        subheading=html.escape(week.title),
        content=content,
        year=now.year,
    )

    plain_text = f"""
Week {week.week} is Now Available: {week.title}

{intro}

This Week's Journey:
{_session_lines(week.sessions)}

Access Week {week.week} content:
{portal_link}

Blessings,
The {COURSE_NAME} Team
"""
    return body_html, plain_text.strip()
