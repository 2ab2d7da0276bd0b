"""
Chat interface service - handles chat UI components and interactions.
"""

import asyncio
from typing import List, Optional

import streamlit as st

from config.app_config import AppConfig, get_config
from services.chat_service.models import ChatMessage
from services.chat_service.session_controller import AssistantSession, ThreadStore
from services.errors import AssistantError, AuthenticationRequiredError
from services.tool_service.models import UserContext, UserLocation, UserPreferences
from services.ui_service.callback_handlers import SessionStreamRenderer
from utils.logging_config import get_error_tracker, get_logger

SUGGESTIONS = [
    {"id": "today", "icon": "📅", "title": "My day", "prompt": "What do I have on my calendar today?"},
    {"id": "gym", "icon": "🏋️", "title": "Book the gym", "prompt": "Schedule gym at 6 PM today for one hour"},
    {"id": "weather", "icon": "🌤️", "title": "Weather", "prompt": "What's the weather like right now?"},
]

CONTEXT_MARKER = "\n\n[CURRENT CONTEXT:"


def display_content(message: ChatMessage) -> str:
    """Hide the context block the server appends to stored user messages"""
    if message.role == "user" and CONTEXT_MARKER in message.content:
        return message.content.split(CONTEXT_MARKER, 1)[0]
    return message.content


class ChatInterface:
    """
    Service for chat interface components and interactions.
    Handles the sidebar, message rendering and streamed turns.
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.logger = get_logger(__name__)
        self.config = config or get_config()

    def get_session(self) -> AssistantSession:
        """Session controller kept across Streamlit reruns"""
        if "assistant_session" not in st.session_state:
            st.session_state.assistant_session = AssistantSession(
                self.config.client.server_url,
                thread_store=ThreadStore(self.config.client.thread_cache_path),
            )
        return st.session_state.assistant_session

    def initialize_session(self, session: AssistantSession) -> bool:
        if session.thread_id is not None:
            return True
        try:
            with st.status("Connecting to Aria...", expanded=False) as status:
                asyncio.run(session.initialize())
                status.update(label="✅ Conversation ready", state="complete")
            return True
        except AuthenticationRequiredError as e:
            st.error(f"🔑 {e.message}")
        except AssistantError as e:
            get_error_tracker().track_error(e, "session_initialization")
            st.error(f"⚠️ {e.message}")
        return False

    def render_sidebar(self, session: AssistantSession):
        """Render conversation controls and the user context form"""
        with st.sidebar:
            st.markdown("## 💬 Conversation")
            if session.thread_id:
                st.caption(f"Thread `{session.thread_id}`")

            if st.button("➕ New Conversation", use_container_width=True, type="secondary"):
                try:
                    asyncio.run(session.clear_conversation())
                except AssistantError as e:
                    st.error(e.message)
                st.rerun()

            st.markdown("### 📍 Your context")
            city = st.text_input("City", key="ctx_city")
            country = st.text_input("Country", key="ctx_country")
            timezone = st.text_input(
                "Timezone", key="ctx_timezone",
                help="IANA name, e.g. Europe/Paris"
            )
            unit = st.radio("Temperature", ["celsius", "fahrenheit"], horizontal=True, key="ctx_unit")

            session.user_context = UserContext(
                location=UserLocation(city=city, country=country) if city else None,
                timezone=timezone or None,
                preferences=UserPreferences(weather_unit=unit),
            )

            st.markdown("### 🔑 Calendar")
            token = st.text_input(
                "Google access token", type="password", key="ctx_token",
                help="OAuth access token with calendar scope"
            )
            session.access_token = token or None
            if session.access_token:
                st.success("Calendar connected")
            else:
                st.info("Calendar not connected")

            if self.config.debug:
                st.divider()
                st.subheader("🔧 Debug Tools")
                st.json(get_error_tracker().get_error_summary())

    def render_chat_messages(self, messages: List[ChatMessage]):
        """Render chat messages in the main interface"""
        for message in messages:
            with st.chat_message(message.role):
                st.markdown(display_content(message))

    def render_welcome_message(self) -> Optional[str]:
        """Render the welcome message; returns a suggestion if one was clicked"""
        st.markdown(
            "Hi, I'm **Aria**. I can read and update your calendar, check your "
            "availability and look up the weather."
        )
        st.markdown("**💡 Try:**")
        cols = st.columns(len(SUGGESTIONS))
        for col, suggestion in zip(cols, SUGGESTIONS):
            with col:
                if st.button(
                    f"{suggestion['icon']} {suggestion['title']}",
                    key=f"prompt_button_{suggestion['id']}",
                    help=suggestion["prompt"],
                    use_container_width=True
                ):
                    return suggestion["prompt"]
        return None

    def run_turn(self, session: AssistantSession, prompt: str):
        """Send one message and stream the answer into the page"""
        with st.chat_message("user"):
            st.markdown(prompt)

        with st.chat_message("assistant"):
            tools_placeholder = st.empty()
            text_placeholder = st.empty()
            text_placeholder.markdown("_Thinking..._")

            renderer = SessionStreamRenderer(text_placeholder, tools_placeholder)
            session.on_update = renderer
            try:
                asyncio.run(session.send_message(prompt))
            except AuthenticationRequiredError as e:
                text_placeholder.empty()
                st.error(f"🔑 {e.message}")
            except AssistantError as e:
                self.logger.warning(f"Turn failed: {e.message}")
                text_placeholder.empty()
                st.error(f"⚠️ {e.message}")
            finally:
                session.on_update = None
                renderer.finish()

        if session.calendar_changed:
            st.toast("📅 Calendar updated")


# Global interface instance
_chat_interface: Optional[ChatInterface] = None


def get_chat_interface() -> ChatInterface:
    """Get the global chat interface instance"""
    global _chat_interface
    if _chat_interface is None:
        _chat_interface = ChatInterface()
    return _chat_interface
