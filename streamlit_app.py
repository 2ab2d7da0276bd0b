import streamlit as st

from config.app_config import get_config
from services.ui_service.chat_interface import get_chat_interface
from utils.logging_config import initialize_logging, get_logger

# Initialize logging and error tracking
error_tracker = initialize_logging()
logger = get_logger(__name__)

# Get configuration
config = get_config()


def main_app():
    """Main application content"""
    st.markdown("""
    <style>
    /* Mobile responsiveness */
    @media (max-width: 768px) {
        .main .block-container {
            padding-left: 1rem;
            padding-right: 1rem;
        }

        .stChatMessage {
            margin-bottom: 0.5rem;
        }
    }

    .main-header {
        text-align: center;
        padding: 1rem 0;
        border-bottom: 2px solid #e3f2fd;
        margin-bottom: 1rem;
    }

    .stChatInput > div {
        border-radius: 25px;
        border: 2px solid #e3f2fd;
    }
    </style>
    """, unsafe_allow_html=True)

    st.markdown(
        '<div class="main-header"><h1>🗓️ Aria</h1><p>AI-powered scheduling assistant</p></div>',
        unsafe_allow_html=True
    )

    interface = get_chat_interface()
    session = interface.get_session()

    # A rerun while a turn was streaming interrupts it
    if session.is_loading:
        session.cancel_request()
        st.info("🛑 The previous request was stopped.")

    if not interface.initialize_session(session):
        return

    interface.render_sidebar(session)

    if session.error:
        st.warning(f"⚠️ Last request failed: {session.error}")

    interface.render_chat_messages(session.messages)

    suggestion = None
    if not session.messages:
        suggestion = interface.render_welcome_message()

    prompt = st.chat_input("How can I help you today?") or suggestion
    if prompt:
        logger.info("User submitted a message", extra={"thread_id": session.thread_id})
        interface.run_turn(session, prompt)
        st.rerun()


st.set_page_config(page_title=config.client.app_title, page_icon="🗓️", layout="centered")
main_app()
