"""
Interactive Chat Client for the Health ERP chatbot.

This module provides a terminal-based menu client for trying the chatbot
end to end: it prints the numbered options of each reply and turns what the
user types into the next ``selected_option``.
"""

import os
import sys
import uuid
from datetime import datetime
from typing import List, Optional

import requests


def resolve_option(user_input: str, options: List[dict]) -> str:
    """
    Map terminal input to a ``selected_option``.

    Accepts a 1-based option number, an option id or an option action;
    anything else is passed through as free text.
    """
    text = user_input.strip()

    if text.isdigit():
        index = int(text) - 1
        if 0 <= index < len(options):
            return options[index]["action"]

    for opt in options:
        if text == str(opt.get("id")) or text == opt.get("action"):
            return opt["action"]

    return text


class HealthChatClient:
    """
    Interactive chat client for the Health ERP chatbot.

    Keeps the user id and the last options shown so numbered choices can be
    resolved locally.
    """

    def __init__(self, base_url: str = "http://localhost:3000", user_id: Optional[str] = None):
        self.base_url = base_url.rstrip('/')
        self.user_id = user_id or f"terminal-{uuid.uuid4().hex[:8]}"
        self.session_id = str(uuid.uuid4())
        self.conversation_history = []
        self.options: List[dict] = []
        self.expecting_input = False

    def print_welcome(self):
        """Print welcome message and instructions."""
        print("🏥" + "=" * 60)
        print("   Health ERP Assistant - Interactive Chat")
        print("=" * 63)
        print(f"📱 User ID: {self.user_id}")
        print("💡 Commands:")
        print("   - Type an option number, id or action")
        print("   - 'menu' to go back to the main menu")
        print("   - 'status' to see the bound patient")
        print("   - 'quit' or 'exit' to quit")
        print("=" * 63)

    def print_reply(self, reply: dict):
        time_str = datetime.now().strftime("%H:%M:%S")
        print(f"\n[{time_str}] 🤖 {reply.get('message', '')}\n")

        for number, opt in enumerate(self.options, 1):
            print(f"   {number}. {opt['text']}")

        if self.expecting_input:
            print("\n   ✏️  Type your answer:")
        print()

    def check_server_health(self) -> bool:
        """Check if the server is running and healthy."""
        try:
            response = requests.get(f"{self.base_url}/health", timeout=3)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def send_option(self, selected_option: str, additional_data: Optional[dict] = None) -> dict:
        """Send a chat turn to the API."""
        payload = {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "selected_option": selected_option,
            "additional_data": additional_data or {},
        }

        try:
            response = requests.post(f"{self.base_url}/chat", json=payload, timeout=15)
        except requests.exceptions.RequestException as e:
            return {
                "error": f"Connection error: {str(e)}",
                "suggestion": "Make sure the server is running with: uvicorn healthbot.main:app --port 3000",
            }

        if response.status_code != 200:
            return {"error": f"Server error: {response.status_code}", "detail": response.text}

        return response.json()

    def login(self, email: Optional[str] = None, password: Optional[str] = None) -> dict:
        """Bind a patient to this user id through /test-login."""
        payload = {"user_id": self.user_id}
        if email:
            payload["email"] = email
        if password:
            payload["password"] = password

        try:
            response = requests.post(f"{self.base_url}/test-login", json=payload, timeout=15)
        except requests.exceptions.RequestException as e:
            return {"success": False, "error": f"Connection error: {str(e)}"}

        return response.json()

    def auth_status(self) -> dict:
        try:
            response = requests.get(f"{self.base_url}/auth-status/{self.user_id}", timeout=5)
        except requests.exceptions.RequestException as e:
            return {"error": f"Connection error: {str(e)}"}
        return response.json()

    def handle_command(self, command: str) -> bool:
        """Handle special commands. Returns True if command was handled."""
        command = command.lower().strip()

        if command in ['quit', 'exit', 'q']:
            print("\n👋 Thank you for using Health ERP Assistant!")
            return True

        elif command == 'clear':
            os.system('clear' if os.name == 'posix' else 'cls')
            self.print_welcome()

        elif command == 'status':
            status = self.auth_status()
            patient = status.get("patient") or {}
            print(f"\n📊 Session Status:")
            print(f"   User ID: {self.user_id}")
            print(f"   Authenticated: {'✅ Yes' if status.get('is_authenticated') else '❌ No'}")
            print(f"   Patient: {patient.get('name') or 'Not bound'}")
            print(f"   Turns: {len(self.conversation_history)}")
            print()

        else:
            return False  # Not a command

        return True

    def process_chat_response(self, response: dict):
        """Process and display chat response."""
        if 'error' in response:
            print(f"❌ Error: {response['error']}")
            if 'suggestion' in response:
                print(f"💡 Suggestion: {response['suggestion']}")
            return

        reply = response.get('response', {})
        self.options = reply.get('options', [])
        self.expecting_input = bool(reply.get('expectingInput'))
        self.print_reply(reply)

    def run_interactive_chat(self):
        """Run the main interactive chat loop."""
        if not self.check_server_health():
            print("❌ Error: could not connect to the server!")
            print("💡 Start it with:")
            print("   uvicorn healthbot.main:app --port 3000")
            return

        self.print_welcome()
        self.process_chat_response(self.send_option("main"))

        while True:
            try:
                user_input = input("👤 You: ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\n👋 Goodbye!")
                break

            if not user_input:
                continue

            if self.handle_command(user_input):
                if user_input.lower().strip() in ['quit', 'exit', 'q']:
                    break
                continue

            selected = "main" if user_input.lower() == "menu" else (
                user_input if self.expecting_input else resolve_option(user_input, self.options)
            )
            self.conversation_history.append({'selected_option': selected, 'timestamp': datetime.now()})
            self.process_chat_response(self.send_option(selected))


def main():
    """Main function to run the chat client."""
    import argparse

    parser = argparse.ArgumentParser(description="Health ERP Interactive Chat Client")
    parser.add_argument("--url", default="http://localhost:3000",
                        help="Base URL of the chatbot server")
    parser.add_argument("--user-id", default=None, help="User id to chat as")
    parser.add_argument("--login", action="store_true",
                        help="Bind a test patient through /test-login before chatting")
    parser.add_argument("--email", default=None, help="Patient e-mail for --login")
    parser.add_argument("--password", default=None, help="Patient password for --login")

    args = parser.parse_args()

    client = HealthChatClient(base_url=args.url, user_id=args.user_id)

    if args.login:
        result = client.login(args.email, args.password)
        if not result.get("success"):
            print(f"❌ Login failed: {result.get('message') or result.get('error') or result.get('detail')}")
            return 1
        print(f"✅ {result.get('message')}")

    client.run_interactive_chat()
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
