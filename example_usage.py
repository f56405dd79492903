import numpy as np
from nectar_config import load_config
from nectar_env import HummingbirdEnv
from nectar_logging import setup_logging
import time
from stable_baselines3 import PPO, SAC
from sb3_contrib import RecurrentPPO
import argparse

def main(model_path: str, model_type: str = 'auto', max_steps_per_episode=1000, config_path: str = 'nectar.yaml'):
    """
    Run a trained hummingbird in the flower area with the PyBullet GUI.

    Args:
        model_path: Path to the trained model zip file
        model_type: Type of model ('ppo', 'recurrent_ppo', 'sac', or 'auto' to detect from filename)
        max_steps_per_episode: Maximum decision steps per episode
        config_path: Optional YAML file overriding the environment defaults
    """
    print("Starting Hummingbird Environment with the 3D view")
    print("=" * 60)

    setup_logging()

    if model_type == 'auto':
        name = model_path.lower()
        if 'recurrent' in name:
            model_type = 'recurrent_ppo'
        elif 'sac' in name:
            model_type = 'sac'
        elif 'ppo' in name:
            model_type = 'ppo'
        else:
            print("  Could not auto-detect model type from filename.")
            print("Please specify --model-type ppo, recurrent_ppo or sac")
            return

    config = load_config(config_path)
    env = HummingbirdEnv(config=config, training_mode=True, render_mode='human')

    if model_type == 'ppo':
        print(" Loading PPO model...")
        model = PPO.load(model_path)
        use_lstm = False
    elif model_type == 'recurrent_ppo':
        print(" Loading RecurrentPPO model...")
        model = RecurrentPPO.load(model_path)
        use_lstm = True
    elif model_type == 'sac':
        print(" Loading SAC model...")
        model = SAC.load(model_path)
        use_lstm = False
    else:
        print(f" Unknown model type: {model_type}")
        print("Valid options: 'ppo', 'recurrent_ppo', 'sac', or 'auto'")
        env.close()
        return

    print(f" Model loaded successfully ({model_type.upper()})")

    total_rewards = []
    total_nectar = []

    try:
        episode = 0
        while True:
            episode += 1
            print(f"\nEpisode {episode}")
            print("-" * 30)

            obs, info = env.reset()
            episode_reward = 0

            if use_lstm:
                lstm_states = None
                episode_start = np.ones((1,), dtype=bool)

            for step in range(max_steps_per_episode):

                if use_lstm:
                    action, lstm_states = model.predict(
                        obs,
                        state=lstm_states,
                        episode_start=episode_start,
                        deterministic=True
                    )
                    episode_start = np.zeros((1,), dtype=bool)
                else:
                    action, _ = model.predict(obs, deterministic=True)

                obs, reward, terminated, truncated, info = env.step(action)
                episode_reward += reward

                env.render()

                if terminated or truncated:
                    break

                time.sleep(0.02)

            print(f"\nEpisode {episode} finished after {step + 1} steps")
            print(f"Total episode reward: {episode_reward:.2f}")
            print(f"Nectar obtained: {info['nectar_obtained']:.2f}")
            print(f"Flowers with nectar left: {info['flowers_remaining']}/{info['total_flowers']}")

            total_rewards.append(episode_reward)
            total_nectar.append(info['nectar_obtained'])

            print("Waiting 2 seconds before next episode...")
            time.sleep(2)

    except KeyboardInterrupt:
        print("\n  Environment interrupted by user")

    finally:

        env.close()

        if total_rewards:
            print("\n" + "=" * 60)
            print(" FINAL SUMMARY")
            print("=" * 60)
            print(f"Episodes completed: {len(total_rewards)}")
            print(f"Average reward: {np.mean(total_rewards):.2f}")
            print(f"Average nectar: {np.mean(total_nectar):.2f}")

        print("Environment closed successfully!")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Run a trained hummingbird in the flower area.')
    parser.add_argument('model_path', type=str, help='Path to the trained model zip file')
    parser.add_argument('--model-type', type=str, default='auto', choices=['auto', 'ppo', 'recurrent_ppo', 'sac'],
                        help='Type of model: ppo, recurrent_ppo, sac, or auto (auto-detect from filename)')
    parser.add_argument('--max-steps', type=int, default=1000, help='Decision steps per episode')
    parser.add_argument('--config', type=str, default='nectar.yaml', help='Optional YAML config file')
    args = parser.parse_args()
    main(model_path=args.model_path, model_type=args.model_type,
         max_steps_per_episode=args.max_steps, config_path=args.config)
